# pvedriver/services/tasks.py
"""
Ожидание асинхронных задач Proxmox.

Любая изменяющая операция драйвера выражается как «отправить, затем ждать»:
    task = supervisor.submit(lambda: vm.start(), "start")
    supervisor.wait(task)
Политика опроса (интервал и таймаут) живёт только здесь.
"""
from __future__ import annotations

import time
import logging
from typing import Callable, Optional, Protocol

from ..infrastructure.proxmox.client import TaskStatus
from ..shared.exceptions import TaskFailedError, TaskTimeoutError

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_TIMEOUT = 300.0


class Task(Protocol):
    id: str

    def poll(self) -> TaskStatus:
        ...


class TaskSupervisor:
    # подменяются в тестах
    clock: Callable[[], float] = staticmethod(time.monotonic)
    sleep: Callable[[float], None] = staticmethod(time.sleep)

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.poll_interval = poll_interval
        self.timeout = timeout

    def submit(self, operation: Callable[[], Task], label: str = "") -> Task:
        """Отправляет операцию в API и возвращает её задачу. Ошибки отправки не перехватываются."""
        task = operation()
        self.logger.debug("Задача %s отправлена: %s", label or "?", task.id)
        return task

    def wait(
        self,
        task: Task,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> TaskStatus:
        """
        Опрашивает задачу до терминального состояния.

        Успех возвращается только после того, как хотя бы один опрос увидел
        завершение. Ошибка опроса пробрасывается сразу, без повторов.

        :raises TaskFailedError: задача завершилась не со статусом OK.
        :raises TaskTimeoutError: задача не завершилась за timeout секунд.
        """
        poll_interval = self.poll_interval if poll_interval is None else poll_interval
        timeout = self.timeout if timeout is None else timeout
        deadline = self.clock() + timeout

        while True:
            status = task.poll()
            if status.completed:
                if status.failed:
                    raise TaskFailedError(task.id, status.exit_status, logger=self.logger)
                self.logger.debug("Задача %s завершена: %s", task.id, status.exit_status)
                return status
            if self.clock() >= deadline:
                raise TaskTimeoutError(task.id, timeout, logger=self.logger)
            self.sleep(poll_interval)

    def run(self, operation: Callable[[], Task], label: str = "") -> TaskStatus:
        """submit + wait с параметрами по умолчанию."""
        return self.wait(self.submit(operation, label))
