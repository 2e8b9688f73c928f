# pvedriver/infrastructure/logger/log_ctx.py
import logging
import contextvars
import ipaddress
from typing import Dict, Any

# контекст хранится в contextvars, поля общие для всего вызова драйвера
_LOG_CTX: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "_LOG_CTX", default={}
)


def set_context(**kwargs) -> None:
    """Добавить или обновить поля (vm_name, vmid, vm_ip, …)."""
    ctx = _LOG_CTX.get().copy()
    ctx.update(kwargs)
    _LOG_CTX.set(ctx)


def clear_context() -> None:
    _LOG_CTX.set({})


class ContextFilter(logging.Filter):
    """Приклеивает поля из _LOG_CTX к каждому LogRecord’у."""
    def filter(self, record: logging.LogRecord) -> bool:          # noqa: D401
        ctx = _LOG_CTX.get()
        for k, v in ctx.items():
            # vm_ip: приклеиваем только валидный IPv4/IPv6
            if k == "vm_ip":
                try:
                    ipaddress.ip_address(str(v))
                except ValueError:
                    continue
            setattr(record, k, v)
        return True
