import re
import random
import logging
from typing import Protocol, Tuple

from ..shared.exceptions import InvalidRangeError

logger = logging.getLogger(__name__)

# знак и цифры, без пробелов
_INT_RE = re.compile(r"[+-]?\d+")


class VmIdAllocator(Protocol):
    def allocate(self) -> int:
        ...


def parse_vmid_range(vmid_range: str) -> Tuple[int, int]:
    """
    "<min>:<max>" → (min, max).

    :raises InvalidRangeError: нет ровно двух частей, часть не число,
        min > max или диапазон пуст (min == max).
    """
    parts = (vmid_range or "").split(":")
    if len(parts) != 2:
        raise InvalidRangeError(vmid_range, "ожидается ровно две части через ':'", logger=logger)

    low, high = parts
    if not _INT_RE.fullmatch(low) or not _INT_RE.fullmatch(high):
        raise InvalidRangeError(vmid_range, "границы должны быть целыми числами", logger=logger)

    low, high = int(low), int(high)
    if low > high:
        raise InvalidRangeError(vmid_range, "<max> меньше <min>", logger=logger)
    if low == high:
        # верхняя граница не входит в диапазон
        raise InvalidRangeError(vmid_range, "пустой диапазон", logger=logger)
    return low, high


class RangeVmIdAllocator:
    """
    Случайный VMID в полуинтервале [min, max).

    Занятость VMID в кластере не проверяется: коллизия проявится
    ошибкой задачи клонирования.
    """

    def __init__(self, vmid_range: str, rng: random.Random = None) -> None:
        self.vmid_range = vmid_range
        self._rng = rng or random.Random()

    def allocate(self) -> int:
        low, high = parse_vmid_range(self.vmid_range)
        vmid = self._rng.randrange(low, high)
        logger.debug("Выбран VMID %s из диапазона %s", vmid, self.vmid_range)
        return vmid
