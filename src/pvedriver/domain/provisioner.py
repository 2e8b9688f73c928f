# pvedriver/domain/provisioner.py
"""
Create: клон шаблона, настройка, ключи, запуск и ожидание IP.

Шаги идут строго по порядку, без возвратов и без отката. Если шаг упал,
ВМ остаётся как есть (например, склонирована, но не настроена),
дальше решает вызывающая сторона: remove или ручной разбор.
"""
from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, List, Optional

from ..infrastructure.logger.log_ctx import set_context
from ..infrastructure.proxmox.client import ProvisioningRequest
from ..shared.exceptions import ProxmoxDriverError
from .ssh_keys import CredentialInjector
from .vm_config import ConfigBatch, base_config, network_config, numa_cpu_overrides

if TYPE_CHECKING:
    from .driver import ProxmoxDriver

PRIMARY_DISK = "scsi0"


class Stage(str, enum.Enum):
    ALLOCATE_ID = "AllocateID"
    CLONE = "Clone"
    RESIZE_DISK = "ResizeDisk"
    APPLY_BASE_CONFIG = "ApplyBaseConfig"
    APPLY_NETWORK_CONFIG = "ApplyNetworkConfig"
    APPLY_NUMA_CPU_OVERRIDES = "ApplyNumaCpuOverrides"
    INJECT_CREDENTIALS = "InjectCredentials"
    START = "Start"
    AWAIT_GUEST_AGENT_IP = "AwaitGuestAgentIP"
    READY = "Ready"


class Provisioner:
    def __init__(self, driver: "ProxmoxDriver") -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.driver = driver
        self.cfg = driver.config
        self.batch = ConfigBatch(
            driver.supervisor, self.cfg.config_apply_retries, self.cfg.config_apply_backoff
        )
        self.injector = CredentialInjector(
            driver.supervisor, driver.get_ssh_key_path(), driver.machine_name
        )

        self.completed: List[Stage] = []
        self.new_vmid: Optional[int] = None

    def _done(self, stage: Stage) -> None:
        self.completed.append(stage)
        self.logger.debug(f"Stage {stage.value} finished")

    # ---------------- stages ---------------- #

    def allocate_id(self) -> None:
        self.new_vmid = self.driver.allocator.allocate()

    def clone(self) -> None:
        try:
            template_vmid = int(self.cfg.clone_vmid)
        except ValueError as e:
            raise ProxmoxDriverError(
                f"Некорректный VMID шаблона: '{self.cfg.clone_vmid}'", logger=self.logger
            ) from e

        request = ProvisioningRequest(
            template_vmid=template_vmid,
            node=self.cfg.node,
            new_vmid=self.new_vmid,
            name=self.driver.machine_name,
            pool=self.cfg.pool,
            storage=self.cfg.storage,
            disk_format=self.cfg.storage_type,
        )
        self.logger.debug(f"cloning new vm from template id '{template_vmid}'")

        template = self.driver.node().virtual_machine(request.template_vmid)
        task = self.driver.supervisor.submit(lambda: template.clone(request)[1], "clone")
        self.logger.debug(f"clone task for new vmid '{request.new_vmid}' created: {task.id}")
        self.driver.supervisor.wait(task)

        # VMID привязывается к драйверу только после успешного клона
        self.driver.bind_vmid(request.new_vmid)
        set_context(vm_name=self.driver.machine_name, vmid=request.new_vmid)
        self.logger.info(f"clone finished for vmid '{request.new_vmid}'")

    def resize_disk(self) -> None:
        size = f"{self.cfg.disk_size}G"
        vm = self.driver.vm()
        self.logger.debug(f"resizing disk '{PRIMARY_DISK}' on vmid '{vm.vmid}' to '{size}'")
        self.driver.supervisor.run(lambda: vm.resize_disk(PRIMARY_DISK, size), "resize")

    def apply_base_config(self) -> None:
        self.logger.debug("add misc configuration options")
        self.batch.apply(self.driver.vm(), base_config(self.cfg))

    def apply_network_config(self) -> None:
        self.batch.apply(self.driver.vm(), network_config(self.cfg))

    def apply_numa_cpu_overrides(self) -> None:
        self.batch.apply(self.driver.vm(), numa_cpu_overrides(self.cfg))

    def inject_credentials(self) -> None:
        self.injector.inject(self.driver.vm())

    def start(self) -> None:
        self.driver.start()

    def await_guest_agent_ip(self) -> None:
        ip = self.driver.discovery.discover_ip(self.driver.vm())
        self.driver.ip_address = ip
        set_context(vm_ip=ip)

    # ---------------- main workflow ---------------- #

    def steps(self):
        return [
            (Stage.ALLOCATE_ID, self.allocate_id),
            (Stage.CLONE, self.clone),
            (Stage.RESIZE_DISK, self.resize_disk),
            (Stage.APPLY_BASE_CONFIG, self.apply_base_config),
            (Stage.APPLY_NETWORK_CONFIG, self.apply_network_config),
            (Stage.APPLY_NUMA_CPU_OVERRIDES, self.apply_numa_cpu_overrides),
            (Stage.INJECT_CREDENTIALS, self.inject_credentials),
            (Stage.START, self.start),
            (Stage.AWAIT_GUEST_AGENT_IP, self.await_guest_agent_ip),
        ]

    def run(self) -> str:
        """
        Выполняет все шаги. Первая ошибка прерывает create и пробрасывается как есть.
        :return: IP новой ВМ.
        """
        for stage, step in self.steps():
            try:
                step()
            except Exception:
                self.logger.error(
                    f"Create прерван на шаге {stage.value} (VMID {self.driver.vmid}), "
                    f"выполнено: {[s.value for s in self.completed]}"
                )
                raise
            self._done(stage)

        self._done(Stage.READY)
        self.logger.info(f"VM {self.driver.vmid} готова, IP {self.driver.ip_address}")
        return self.driver.ip_address
