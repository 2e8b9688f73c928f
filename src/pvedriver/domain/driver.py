from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from ..infrastructure.proxmox.client import ProxmoxNode, ProxmoxVm
from ..infrastructure.proxmox.connection import ProxmoxConnection
from ..services.tasks import TaskSupervisor
from ..shared.exceptions import VMIDNotSetError
from ..shared.settings import Config, cfg as default_cfg
from ..shared.state import DriverState
from .discovery import NetworkDiscovery, StateReport, StateReporter
from .lifecycle import LifecycleController, Operation
from .provisioner import Provisioner
from .vmid import RangeVmIdAllocator, VmIdAllocator

DRIVER_NAME = "proxmoxve"


class ProxmoxDriver:
    """
    Драйвер одной ВМ Proxmox VE для внешнего оркестратора.

    Один экземпляр на одну ВМ; вызовы предполагаются последовательными.
    После успешного клона VMID привязан к экземпляру навсегда.
    """

    def __init__(
        self,
        machine_name: str,
        store_path: Optional[str] = None,
        config: Optional[Config] = None,
        connection: Optional[ProxmoxConnection] = None,
        allocator: Optional[VmIdAllocator] = None,
    ) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config = config or default_cfg
        self.machine_name = machine_name
        self.store_path = os.path.expanduser(store_path or self.config.store_path)

        self.connection = connection or ProxmoxConnection(
            host=self.config.host,
            user=self.config.user,
            password=self.config.password,
            realm=self.config.realm,
            port=self.config.port,
            verify_ssl=self.config.verify_ssl,
        )
        self.supervisor = TaskSupervisor(self.config.task_poll_interval, self.config.task_timeout)
        self.allocator = allocator or RangeVmIdAllocator(self.config.vmid_range)
        self.discovery = NetworkDiscovery(self.config.agent_timeout, self.config.agent_poll_interval)
        self.state_reporter = StateReporter()
        self.lifecycle = LifecycleController(self.vm, self.supervisor)

        self.vmid: Optional[int] = None
        self.ip_address: str = ""

    # ───────── сессия ─────────
    def connect(self) -> None:
        """Подключается, если сессии ещё нет. Протухшая сессия не обновляется."""
        if not self.connection.connected:
            self.connection.connect()

    def reconnect(self) -> None:
        self.connection.reconnect()

    def pre_create_check(self) -> None:
        self.connect()

    # ───────── доступ к ВМ ─────────
    def node(self) -> ProxmoxNode:
        self.connect()
        return ProxmoxNode(self.connection.api, self.config.node)

    def vm(self) -> ProxmoxVm:
        """Ссылка на ВМ строится заново при каждом обращении."""
        if self.vmid is None:
            raise VMIDNotSetError(self.machine_name, logger=self.logger)
        return self.node().virtual_machine(self.vmid)

    def bind_vmid(self, vmid: int) -> None:
        self.vmid = int(vmid)
        self.logger.debug(f"vmid value VMID: '{self.vmid}'")

    # ───────── операции оркестратора ─────────
    def create(self) -> str:
        return Provisioner(self).run()

    def start(self) -> None:
        self.lifecycle.operate(Operation.START)

    def stop(self) -> None:
        self.lifecycle.operate(Operation.STOP)

    def restart(self) -> None:
        self.lifecycle.operate(Operation.RESTART)

    def kill(self) -> None:
        self.lifecycle.operate(Operation.KILL)

    def remove(self) -> None:
        self.lifecycle.operate(Operation.REMOVE)

    def get_state(self) -> StateReport:
        return self.state_reporter.report(self.vm())

    def get_ip(self) -> str:
        self.ip_address = self.discovery.discover_ip(self.vm())
        return self.ip_address

    def get_url(self) -> str:
        return f"tcp://{self.get_ip()}:{self.config.docker_port}"

    def get_ssh_hostname(self) -> str:
        return self.get_ip()

    def get_ssh_port(self) -> int:
        return self.config.ssh_port

    def get_ssh_username(self) -> str:
        return self.config.ssh_username

    # ───────── прочее ─────────
    @staticmethod
    def driver_name() -> str:
        return DRIVER_NAME

    def get_machine_name(self) -> str:
        return self.machine_name

    def get_net_bridge(self) -> str:
        return self.config.net_bridge

    def get_net_vlan_tag(self) -> int:
        return self.config.net_vlan_tag

    @property
    def machine_dir(self) -> Path:
        return Path(self.store_path) / "machines" / self.machine_name

    def get_ssh_key_path(self) -> str:
        return str(self.machine_dir / "id_rsa")

    # ───────── состояние между запусками ─────────
    def save_state(self) -> Path:
        return DriverState(
            machine_name=self.machine_name, vmid=self.vmid, ip_address=self.ip_address
        ).save(self.machine_dir)

    def load_state(self) -> None:
        state = DriverState.load(self.machine_dir, self.machine_name)
        self.vmid = state.vmid
        self.ip_address = state.ip_address
