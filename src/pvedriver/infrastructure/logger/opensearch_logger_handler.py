# pvedriver/infrastructure/logger/opensearch_logger_handler.py
import ipaddress
import logging
import sys

from opensearchpy import OpenSearch, exceptions as opensearch_exceptions

IGNORED_MODULES = {"opensearch", "urllib3", "proxmoxer", "paramiko"}

# поля контекста ВМ, которые ContextFilter приклеивает к записи
VM_FIELDS = ("vm_name", "vmid", "vm_ip")


class OpenSearchHandler(logging.Handler):
    """
    Пишет каждую запись отдельным документом в индекс OpenSearch.
    Если у записи есть vm_name / vmid / vm_ip, они попадают в документ.
    """
    def __init__(
        self,
        host: str,
        port: int = 9200,
        username: str = "admin",
        password: str = "",
        index_name: str = "pve-machine-driver",
        client: OpenSearch = None,
    ):
        super().__init__()
        self.index_name = index_name

        self.client = client or OpenSearch(
            hosts=[{"host": host, "port": port}],
            http_auth=(username, password),
            use_ssl=False,
            verify_certs=False,
            timeout=30,
            max_retries=5,
            retry_on_timeout=True,
        )
        self._ensure_index_exists()

    # ------------------------------------------------------------------ #
    # 1. Создаём индекс с нужным набором полей
    # ------------------------------------------------------------------ #
    def _ensure_index_exists(self) -> None:
        props = {
            "timestamp": {
                "type":   "date",
                "format": "epoch_millis",
            },
            "level":    {"type": "keyword"},
            "logger":   {"type": "keyword"},
            "module":   {"type": "keyword"},
            "function": {"type": "keyword"},
            "line":     {"type": "integer"},
            "message":  {"type": "text"},
            "vm_name":  {"type": "keyword"},
            "vmid":     {"type": "integer"},
            "vm_ip":    {"type": "ip"},
        }
        mapping = {"mappings": {"properties": props}}

        try:
            if not self.client.indices.exists(index=self.index_name):
                self.client.indices.create(index=self.index_name, body=mapping)
        except opensearch_exceptions.ConnectionError as e:
            print(f"[Logger] OpenSearch connection error: {e}", file=sys.stderr)
        except opensearch_exceptions.OpenSearchException as e:
            print(f"[Logger] Error while creating index: {e}", file=sys.stderr)

    def build_document(self, record: logging.LogRecord) -> dict:
        doc = {
            "timestamp": int(record.created * 1000),
            "level":     record.levelname,
            "logger":    record.name,
            "module":    record.module,
            "function":  record.funcName,
            "line":      record.lineno,
            "message":   record.getMessage(),
        }
        for fld in VM_FIELDS:
            if not hasattr(record, fld):
                continue
            val = getattr(record, fld)
            # vm_ip → только корректные адреса
            if fld == "vm_ip":
                try:
                    ipaddress.ip_address(str(val))
                except ValueError:
                    continue
            doc[fld] = val
        return doc

    # ------------------------------------------------------------------ #
    # 2. Отправляем документ
    # ------------------------------------------------------------------ #
    def emit(self, record: logging.LogRecord) -> None:
        # отбрасываем «шумные» либы
        if record.name.split(".")[0] in IGNORED_MODULES:
            return

        try:
            self.client.index(index=self.index_name, body=self.build_document(record))
        except Exception:
            self.handleError(record)
