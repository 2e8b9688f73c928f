"""
Добавление свежего SSH-ключа к cloud-init ключам ВМ.

Поле sshkeys в Proxmox хранится URL-кодированным, причём API не принимает
'+', '=' и '@' даже там, где обычное path-экранирование их оставляет.
См. https://forum.proxmox.com/threads/how-to-use-pvesh-set-vms-sshkeys.52570/
"""
import time
import logging
from typing import Callable, Optional
from urllib.parse import quote, unquote_plus

from ..infrastructure.ssh.keygen import generate_ssh_key, read_public_key
from ..services.tasks import TaskSupervisor

logger = logging.getLogger(__name__)

# символы, которые path-экранирование оставляет как есть (RFC 3986, сегмент пути)
_PATH_SAFE = "$&+:=@"
_EXTRA_ESCAPES = (("+", "%2B"), ("=", "%3D"), ("@", "%40"))


def tag_key(public_key: str, machine_name: str, timestamp: int) -> str:
    """Метка <machine>-<unix ts> отличает ключи повторных create."""
    return f"{public_key.strip()} {machine_name}-{timestamp}"


def merge_ssh_keys(existing: str, new_key: str) -> str:
    """
    Декодирует текущие ключи ВМ и дописывает новый через один перевод строки.
    Дубликаты не убираются.
    """
    keys = ""
    if existing:
        keys = unquote_plus(existing).strip()
        keys += "\n"
    keys += new_key
    return keys.strip()


def encode_ssh_keys(keys: str) -> str:
    """Path-экранирование, затем отдельно '+', '=' и '@'."""
    encoded = quote(keys, safe=_PATH_SAFE)
    for char, escaped in _EXTRA_ESCAPES:
        encoded = encoded.replace(char, escaped)
    return encoded


class CredentialInjector:
    def __init__(
        self,
        supervisor: TaskSupervisor,
        key_path: str,
        machine_name: str,
        keygen: Optional[Callable[[str], None]] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.supervisor = supervisor
        self.key_path = key_path
        self.machine_name = machine_name
        self.keygen = keygen or generate_ssh_key
        self.clock = clock or time.time

    def create_key(self) -> str:
        self.logger.debug(f"Creating SSH key at {self.key_path}")
        self.keygen(self.key_path)
        key = read_public_key(self.key_path)
        self.logger.debug(f"Read SSH key from {self.key_path}: {key.strip()}")
        return key

    def inject(self, vm) -> str:
        """
        Генерирует ключ, сливает с уже заданными и пишет в sshkeys одним вызовом.
        :return: закодированное значение, записанное в конфиг.
        """
        key = tag_key(self.create_key(), self.machine_name, int(self.clock()))

        self.logger.debug(f"retrieving existing cloud-init sshkeys from vmid '{vm.vmid}'")
        merged = merge_ssh_keys(vm.ssh_keys(), key)
        encoded = encode_ssh_keys(merged)

        self.supervisor.run(lambda: vm.apply_config("sshkeys", encoded), "config-sshkeys")
        self.logger.debug(f"cloud-init sshkeys set to '{encoded}'")
        return encoded
