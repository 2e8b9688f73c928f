import logging
from typing import Optional

import requests
from proxmoxer import ProxmoxAPI
from proxmoxer.backends.https import AuthenticationError
from proxmoxer.core import ResourceException

from ...shared.exceptions import PVEAuthenticationError, PVETransportError


class ProxmoxConnection:
    """
    Явно управляемая сессия к API Proxmox VE.

    Сессия создаётся вызовом connect() и живёт до invalidate().
    Автоматического переподключения нет: протухшая сессия приводит
    к ошибке вызова, а не к тихому reconnect.
    """

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        realm: str = "pam",
        port: int = 8006,
        verify_ssl: bool = False,
    ) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.realm = realm
        self.verify_ssl = verify_ssl

        self._api: Optional[ProxmoxAPI] = None
        self.cluster_name: Optional[str] = None
        self.version: Optional[str] = None

    @property
    def url(self) -> str:
        return f"https://{self.host}:{self.port}/api2/json"

    @property
    def connected(self) -> bool:
        return self._api is not None

    @property
    def api(self) -> ProxmoxAPI:
        if self._api is None:
            raise PVETransportError(self.host, self.port, details="сессия не установлена, вызовите connect()")
        return self._api

    def connect(self) -> ProxmoxAPI:
        """Устанавливает сессию и проверяет её запросом версии и состава кластера."""
        self.logger.debug(f"Connecting to {self.url}")
        try:
            api = ProxmoxAPI(
                self.host,
                user=f"{self.user}@{self.realm}",
                password=self.password,
                port=self.port,
                verify_ssl=self.verify_ssl,
            )
            version = api.version.get()
            cluster = api.cluster.status.get()
        except AuthenticationError as e:
            raise PVEAuthenticationError(self.host, self.port, logger=self.logger, details=str(e)) from e
        except ResourceException as e:
            if e.status_code in (401, 403):
                raise PVEAuthenticationError(self.host, self.port, logger=self.logger, details=str(e)) from e
            raise PVETransportError(self.host, self.port, logger=self.logger, details=str(e)) from e
        except requests.exceptions.RequestException as e:
            raise PVETransportError(self.host, self.port, logger=self.logger, details=str(e)) from e

        self._api = api
        self.version = version.get("version", "unknown")
        self.cluster_name = self._cluster_name(cluster)
        self.logger.info(f"Connected to pve cluster {self.cluster_name} with version: {self.version}")
        return api

    @staticmethod
    def _cluster_name(status: list) -> str:
        # у одиночного узла записи type=cluster нет
        for entry in status or []:
            if entry.get("type") == "cluster":
                return entry.get("name", "")
        for entry in status or []:
            if entry.get("type") == "node":
                return entry.get("name", "")
        return "standalone"

    def invalidate(self) -> None:
        """Забыть текущую сессию. Следующий вызов api потребует connect()."""
        if self._api is not None:
            self.logger.info(f"Сессия к {self.host} сброшена.")
        self._api = None
        self.cluster_name = None
        self.version = None

    def reconnect(self) -> ProxmoxAPI:
        self.invalidate()
        return self.connect()
