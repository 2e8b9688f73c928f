"""
Тонкая обёртка над proxmoxer: узел, ВМ и асинхронная задача (UPID).

Каждый вызов ходит в API заново: объекты не кэшируют конфигурацию ВМ
между операциями, которые могут её поменять.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from proxmoxer import ProxmoxAPI
from proxmoxer.core import ResourceException

logger = logging.getLogger(__name__)

TASK_OK = "OK"


@dataclass(frozen=True)
class ProvisioningRequest:
    template_vmid: int
    node: str
    new_vmid: int
    name: str
    pool: str = ""
    storage: str = ""
    disk_format: str = ""
    full: bool = True

    def clone_params(self) -> Dict[str, Any]:
        # пустые значения не передаём, Proxmox выберет сам
        params: Dict[str, Any] = {
            "newid": self.new_vmid,
            "name": self.name,
            "full": int(self.full),
        }
        if self.pool:
            params["pool"] = self.pool
        if self.storage:
            params["storage"] = self.storage
        if self.disk_format:
            params["format"] = self.disk_format
        return params


@dataclass(frozen=True)
class IPAddress:
    address: str
    family: str  # "ipv4" | "ipv6"


@dataclass(frozen=True)
class NetworkInterfaceReport:
    name: str
    hardware_address: str
    ip_addresses: List[IPAddress] = field(default_factory=list)

    @classmethod
    def from_agent(cls, raw: Dict[str, Any]) -> "NetworkInterfaceReport":
        return cls(
            name=raw.get("name", ""),
            hardware_address=raw.get("hardware-address", ""),
            ip_addresses=[
                IPAddress(ip.get("ip-address", ""), ip.get("ip-address-type", ""))
                for ip in raw.get("ip-addresses", []) or []
            ],
        )


@dataclass(frozen=True)
class TaskStatus:
    status: str
    exit_status: str = ""

    @property
    def completed(self) -> bool:
        return self.status == "stopped"

    @property
    def failed(self) -> bool:
        return self.completed and self.exit_status != TASK_OK


class ProxmoxTask:
    """Асинхронная задача Proxmox, идентифицируется UPID."""

    def __init__(self, api: ProxmoxAPI, upid: str, node: Optional[str] = None) -> None:
        self.api = api
        self.upid = upid
        # UPID:<node>:<pid>:<pstart>:<starttime>:<type>:<id>:<user>:
        self.node = node or upid.split(":")[1]

    @property
    def id(self) -> str:
        return self.upid

    def poll(self) -> TaskStatus:
        raw = self.api.nodes(self.node).tasks(self.upid).status.get()
        return TaskStatus(raw.get("status", ""), raw.get("exitstatus", ""))

    def __repr__(self) -> str:
        return f"ProxmoxTask({self.upid!r})"


class CompletedTask:
    """Синхронный ответ API без UPID: задача уже завершена."""

    def __init__(self, label: str) -> None:
        self.id = f"sync:{label}"

    def poll(self) -> TaskStatus:
        return TaskStatus("stopped", TASK_OK)


def as_task(api: ProxmoxAPI, result: Any, label: str):
    if isinstance(result, str) and result.startswith("UPID:"):
        return ProxmoxTask(api, result)
    return CompletedTask(label)


class ProxmoxVm:
    """Ссылка на QEMU-ВМ: узел + VMID."""

    def __init__(self, api: ProxmoxAPI, node: str, vmid: int) -> None:
        self.api = api
        self.node = node
        self.vmid = int(vmid)
        self._status: Dict[str, Any] = {}

    @property
    def _resource(self):
        return self.api.nodes(self.node).qemu(self.vmid)

    def _task(self, result: Any, label: str):
        return as_task(self.api, result, f"{label}:{self.vmid}")

    # ───────── конфигурация ─────────
    def config(self) -> Dict[str, Any]:
        return self._resource.config.get() or {}

    def net_descriptor(self, interface: str = "net0") -> str:
        return str(self.config().get(interface, ""))

    def ssh_keys(self) -> str:
        return str(self.config().get("sshkeys", ""))

    def apply_config(self, key: str, value: str):
        return self._task(self._resource.config.post(**{key: value}), f"config-{key}")

    def resize_disk(self, disk: str, size: str):
        # старые PVE отвечают синхронно, новые UPID
        return self._task(self._resource.resize.put(disk=disk, size=size), "resize")

    # ───────── клон и питание ─────────
    def clone(self, request: ProvisioningRequest) -> Tuple[int, Any]:
        result = self._resource.clone.post(**request.clone_params())
        return request.new_vmid, self._task(result, "clone")

    def start(self):
        return self._task(self._resource.status.start.post(), "start")

    def stop(self):
        return self._task(self._resource.status.stop.post(), "stop")

    def reset(self):
        return self._task(self._resource.status.reset.post(), "reset")

    def delete(self):
        return self._task(self._resource.delete(), "delete")

    # ───────── статус ─────────
    def refresh_status(self) -> Dict[str, Any]:
        self._status = self._resource.status.current.get() or {}
        return self._status

    def is_running(self) -> bool:
        return self._status.get("status") == "running"

    def is_stopped(self) -> bool:
        return self._status.get("status") == "stopped"

    # ───────── guest agent ─────────
    def ping_agent(self) -> bool:
        try:
            self._resource.agent.ping.post()
            return True
        except ResourceException as e:
            logger.debug("VM %s: guest agent ещё не отвечает: %s", self.vmid, e)
            return False

    def agent_network_interfaces(self) -> List[NetworkInterfaceReport]:
        raw = self._resource.agent("network-get-interfaces").get() or {}
        return [NetworkInterfaceReport.from_agent(i) for i in raw.get("result", [])]

    def __repr__(self) -> str:
        return f"ProxmoxVm(node={self.node!r}, vmid={self.vmid})"


class ProxmoxNode:
    def __init__(self, api: ProxmoxAPI, name: str) -> None:
        self.api = api
        self.name = name

    def virtual_machine(self, vmid: int) -> ProxmoxVm:
        return ProxmoxVm(self.api, self.name, vmid)
