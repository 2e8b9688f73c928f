import logging
from typing import Optional, Sequence


class ProxmoxDriverError(Exception):
    """Базовый класс для ошибок драйвера Proxmox VE."""
    def __init__(self, message: str, logger: logging.Logger = None):
        super().__init__(message)
        self.message = message
        self.logger = logger
        if self.logger:
            self.logger.error(message)

    def __str__(self):
        return self.message


class PVEConnectionError(ProxmoxDriverError):
    """Не удалось установить сессию с Proxmox VE."""
    def __init__(self, host: str, port: int, logger: logging.Logger = None, details: str = None):
        message = f"Не удалось подключиться к Proxmox VE {host}:{port}."
        if details:
            message += f" Детали: {details}"
        super().__init__(message, logger)
        self.host = host
        self.port = port
        self.details = details


class PVETransportError(PVEConnectionError):
    """Хост недоступен или ошибка TLS."""


class PVEAuthenticationError(PVEConnectionError):
    """Proxmox VE отклонил учётные данные."""


class InvalidRangeError(ProxmoxDriverError):
    """Некорректный диапазон VMID."""
    def __init__(self, vmid_range: str, reason: str, logger: logging.Logger = None):
        message = (
            f"VMIDRange must be in the form of <min>:<max> with <min> < <max>. "
            f"Given: '{vmid_range}' ({reason})"
        )
        super().__init__(message, logger)
        self.vmid_range = vmid_range
        self.reason = reason


class TaskError(ProxmoxDriverError):
    """Базовый класс для ошибок асинхронных задач Proxmox."""
    def __init__(self, message: str, task_id: str, logger: logging.Logger = None):
        super().__init__(message, logger)
        self.task_id = task_id


class TaskFailedError(TaskError):
    """Задача завершилась со статусом, отличным от OK."""
    def __init__(self, task_id: str, exit_status: str, logger: logging.Logger = None):
        message = f"Задача {task_id} завершилась с ошибкой: {exit_status}"
        super().__init__(message, task_id, logger)
        self.exit_status = exit_status


class TaskTimeoutError(TaskError):
    """Задача не завершилась за отведённое время."""
    def __init__(self, task_id: str, timeout: float, logger: logging.Logger = None):
        message = f"Истекло время ожидания задачи {task_id} ({timeout} секунд)."
        super().__init__(message, task_id, logger)
        self.timeout = timeout


class AgentUnavailableError(ProxmoxDriverError):
    """QEMU guest agent так и не ответил."""
    def __init__(self, vmid: int, timeout: float, logger: logging.Logger = None):
        message = f"Guest agent VM {vmid} не ответил за {timeout} секунд."
        super().__init__(message, logger)
        self.vmid = vmid
        self.timeout = timeout


class NoIPAssignedError(ProxmoxDriverError):
    """У интерфейса с MAC основной сети нет IPv4-адреса."""
    def __init__(self, vmid: int, net_descriptor: str, logger: logging.Logger = None):
        message = f"Не удалось получить IPv4 для VM {vmid} (net0: '{net_descriptor}')."
        super().__init__(message, logger)
        self.vmid = vmid
        self.net_descriptor = net_descriptor


class InvalidOperationError(ProxmoxDriverError):
    """Операция вне набора start/stop/restart/kill."""
    def __init__(self, operation: str, logger: logging.Logger = None):
        super().__init__(f"Invalid operation: {operation}", logger)
        self.operation = operation


class ConfigApplyError(ProxmoxDriverError):
    """
    Ошибка при применении одного из параметров конфигурации.
    Предыдущие параметры уже применены, последующие нет.
    """
    def __init__(
        self,
        vmid: int,
        key: str,
        applied: Sequence[str],
        pending: Sequence[str],
        logger: logging.Logger = None,
        details: Optional[str] = None,
    ):
        message = (
            f"Не удалось применить параметр '{key}' к VM {vmid}. "
            f"Применены: {list(applied)}, не применены: {list(pending)}."
        )
        if details:
            message += f" Детали: {details}"
        super().__init__(message, logger)
        self.vmid = vmid
        self.key = key
        self.applied = list(applied)
        self.pending = list(pending)
        self.details = details


class VMIDNotSetError(ProxmoxDriverError):
    """Операция над ВМ запрошена до того, как VMID был назначен."""
    def __init__(self, machine_name: str, logger: logging.Logger = None):
        super().__init__(f"invalid VMID: машина '{machine_name}' ещё не создана", logger)
        self.machine_name = machine_name


class SSHKeyError(ProxmoxDriverError):
    """Ошибка генерации или чтения SSH-ключа."""
    def __init__(self, path: str, logger: logging.Logger = None, details: str = None):
        message = f"Не удалось подготовить SSH-ключ '{path}'."
        if details:
            message += f" Детали: {details}"
        super().__init__(message, logger)
        self.path = path
        self.details = details
