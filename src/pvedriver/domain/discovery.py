import enum
import time
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import requests
from proxmoxer.core import ResourceException

from ..infrastructure.proxmox.client import NetworkInterfaceReport
from ..shared.exceptions import AgentUnavailableError, NoIPAssignedError

AGENT_TIMEOUT = 300.0
AGENT_POLL_INTERVAL = 1.0


def select_ipv4(net_descriptor: str, interfaces: Iterable[NetworkInterfaceReport]) -> Optional[str]:
    """
    Первый IPv4 интерфейса, чей MAC входит в строку net0 (без учёта регистра).
    Интерфейсы без MAC (lo у некоторых агентов) пропускаются.
    """
    net = net_descriptor.lower()
    for iface in interfaces:
        mac = iface.hardware_address.lower()
        if not mac or mac not in net:
            continue
        for ip in iface.ip_addresses:
            if ip.family == "ipv4":
                return ip.address
    return None


class NetworkDiscovery:
    """Ожидание guest agent и поиск IP основной сетевой карты."""

    clock: Callable[[], float] = staticmethod(time.monotonic)
    sleep: Callable[[float], None] = staticmethod(time.sleep)

    def __init__(self, timeout: float = AGENT_TIMEOUT, poll_interval: float = AGENT_POLL_INTERVAL) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.timeout = timeout
        self.poll_interval = poll_interval

    def wait_for_agent(self, vm) -> None:
        deadline = self.clock() + self.timeout
        while not vm.ping_agent():
            if self.clock() >= deadline:
                raise AgentUnavailableError(vm.vmid, self.timeout, logger=self.logger)
            self.sleep(self.poll_interval)
        self.logger.debug(f"VM {vm.vmid}: guest agent отвечает.")

    def discover_ip(self, vm) -> str:
        """
        :raises AgentUnavailableError: агент не ответил за timeout.
        :raises NoIPAssignedError: нет интерфейса с нужным MAC или у него нет IPv4.
        """
        self.wait_for_agent(vm)
        net = vm.net_descriptor()
        ip = select_ipv4(net, vm.agent_network_interfaces())
        if not ip:
            raise NoIPAssignedError(vm.vmid, net, logger=self.logger)
        self.logger.info(f"VM {vm.vmid} got an IP: {ip}")
        return ip


class VmState(str, enum.Enum):
    RUNNING = "Running"
    STOPPED = "Stopped"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class StateReport:
    state: VmState
    error: Optional[Exception] = None


class StateReporter:
    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    def report(self, vm) -> StateReport:
        try:
            vm.refresh_status()
        except (ResourceException, requests.exceptions.RequestException) as e:
            self.logger.warning(f"VM {vm.vmid}: статус недоступен: {e}")
            return StateReport(VmState.UNKNOWN, e)

        if vm.is_stopped():
            return StateReport(VmState.STOPPED)
        if vm.is_running():
            return StateReport(VmState.RUNNING)
        return StateReport(VmState.UNKNOWN)
