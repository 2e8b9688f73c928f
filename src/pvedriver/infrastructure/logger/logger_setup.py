# pvedriver/infrastructure/logger/logger_setup.py
from __future__ import annotations

import logging
import logging.handlers
from queue import Queue
from typing import Callable, Tuple

from ...shared.settings import Config
from .opensearch_logger_handler import OpenSearchHandler
from .log_ctx import ContextFilter

LOGGER_NAME = "pvedriver"

# ────────────────────────────────────────────────────────────────────────
#  Настройки «тихого режима» для болтливых библиотек
# ────────────────────────────────────────────────────────────────────────
_NOISY_LIBS = (
    "urllib3",
    "opensearch",
    "proxmoxer",
    "paramiko",
)


def _mute_third_party() -> None:
    """Переключаем болтливые библиотеки на WARNING и запрещаем propagate."""
    for name in _NOISY_LIBS:
        lib_log = logging.getLogger(name)
        lib_log.setLevel(logging.WARNING)
        lib_log.propagate = False


# ────────────────────────────────────────────────────────────────────────
#  Фабрика логгера
# ────────────────────────────────────────────────────────────────────────
def setup_logger(config: Config) -> Tuple[logging.Logger, Callable[[], None]]:
    """
    Возвращает (логгер, stop_fn).  stop_fn нужно вызвать при завершении работы
    процесса, чтобы корректно погасить QueueListener.

    Логгер вешается на root: классы драйвера пишут в
    logging.getLogger(self.__class__.__name__), а не в дочерние логгеры.
    """
    log = logging.getLogger(LOGGER_NAME)
    root = logging.getLogger()

    # Если QueueHandler уже висит, возвращаем существующий логгер
    if any(isinstance(h, logging.handlers.QueueHandler) for h in root.handlers):
        return log, lambda: None

    # ── базовые настройки ───────────────────────────────────────────
    root.setLevel(logging.DEBUG)          # всё принимаем, фильтруем на хендлерах
    q: Queue = Queue()
    queue_handler = logging.handlers.QueueHandler(q)
    queue_handler.addFilter(ContextFilter())   # контекст читается в потоке вызова
    root.addHandler(queue_handler)

    # ── консоль ─────────────────────────────────────────────────────
    console = logging.StreamHandler()
    console.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            "%Y-%m-%d %H:%M:%S",
        )
    )
    console.setLevel(logging.DEBUG if config.debug else logging.INFO)
    console.addFilter(lambda r: r.name.split(".")[0] not in _NOISY_LIBS)
    handlers = [console]

    # ── OpenSearch (только если задан хост) ─────────────────────────
    if config.opensearch_host:
        os_handler = OpenSearchHandler(
            host=config.opensearch_host,
            port=config.opensearch_port,
            username=config.opensearch_user,
            password=config.opensearch_password,
            index_name=config.opensearch_index,
        )
        os_handler.setLevel(logging.DEBUG if config.debug else logging.INFO)
        handlers.append(os_handler)

    listener = logging.handlers.QueueListener(q, *handlers, respect_handler_level=True)
    listener.start()

    # приглушаем сторонние библиотеки
    _mute_third_party()

    def stop() -> None:
        listener.stop()
        root.removeHandler(queue_handler)

    return log, stop
