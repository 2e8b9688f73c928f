"""
Пакетное применение параметров ВМ.

Параметры пишутся по одному, каждый отдельной задачей. Пакет не
транзакционный: при ошибке уже применённые параметры остаются,
остальные не отправляются, и это видно из ConfigApplyError.
"""
from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from ..services.tasks import TaskSupervisor
from ..shared.exceptions import ConfigApplyError
from ..shared.retry import retry_sync
from ..shared.settings import Config
from .network import build_network_descriptor

ConfigPairs = List[Tuple[str, str]]


def base_config(cfg: Config) -> ConfigPairs:
    return [
        ("agent", "1"),
        ("autostart", "1"),
        ("memory", str(cfg.memory_mb)),
        ("sockets", cfg.cpu_sockets),
        ("cores", cfg.cpu_cores),
        ("kvm", "1"),
        ("citype", cfg.citype),
        ("onboot", cfg.onboot),
        ("protection", cfg.protection),
    ]


def network_config(cfg: Config) -> ConfigPairs:
    if not cfg.net_bridge:
        return []
    return [(
        "net0",
        build_network_descriptor(
            cfg.net_model, cfg.net_bridge, cfg.net_vlan_tag, cfg.net_firewall, cfg.net_mtu
        ),
    )]


def numa_cpu_overrides(cfg: Config) -> ConfigPairs:
    pairs: ConfigPairs = []
    if cfg.numa:
        pairs.append(("numa", cfg.numa))
    if cfg.cpu:
        pairs.append(("cpu", cfg.cpu))
    return pairs


class ConfigBatch:
    def __init__(self, supervisor: TaskSupervisor, retries: int = 1, backoff: float = 2.0) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.supervisor = supervisor
        self.retries = retries
        self.backoff = backoff

    def apply(self, vm, pairs: Sequence[Tuple[str, str]]) -> List[str]:
        """
        Применяет пары по порядку. Пустое значение = «оставить как в шаблоне»,
        такой параметр не отправляется.
        :return: ключи, которые были записаны.
        """
        pairs = [(k, v) for k, v in pairs if v != ""]
        applied: List[str] = []
        for index, (key, value) in enumerate(pairs):
            self.logger.debug(f"ConfigureVM: {key} {value}")
            try:
                retry_sync(
                    lambda: self.supervisor.run(
                        lambda: vm.apply_config(key, value), f"config-{key}"
                    ),
                    self.retries,
                    self.backoff,
                    f"config-{key}",
                )
            except Exception as e:
                raise ConfigApplyError(
                    vm.vmid,
                    key,
                    applied,
                    [k for k, _ in pairs[index + 1:]],
                    logger=self.logger,
                    details=str(e),
                ) from e
            applied.append(key)
        return applied
