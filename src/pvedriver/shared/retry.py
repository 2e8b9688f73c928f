import time
import logging

logger = logging.getLogger(__name__)


def retry_sync(fn, retries: int, backoff: float, label: str = "", sleep=time.sleep):
    """
    Синхронный back-off-retry с экспонентой.
    retries=1: одна попытка, ошибка пробрасывается сразу.
    """
    retries = max(1, retries)
    for attempt in range(1, retries + 1):
        try:
            return fn()
        except Exception as e:
            if attempt == retries:
                raise
            logger.warning(
                "[retry] Ошибка в %s (попытка %s/%s): %s",
                label or fn.__name__, attempt, retries, e
            )
            sleep(backoff * (2 ** (attempt - 1)))  # экспоненциальный backoff
