import os
import logging
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


env_path = Path.cwd() / ".env"

# Поля, значения которых не должны попадать в лог
_SECRET_FIELDS = {"password", "ssh_password", "opensearch_password"}


class Config(BaseSettings):
    # Подключение к Proxmox VE
    host: str = Field("192.168.1.253", alias="PROXMOXVE_PROXMOX_HOST")
    port: int = Field(8006, alias="PROXMOXVE_PROXMOX_PORT")
    node: str = Field("", alias="PROXMOXVE_PROXMOX_NODE")
    user: str = Field("root", alias="PROXMOXVE_PROXMOX_USER_NAME")
    password: str = Field("", alias="PROXMOXVE_PROXMOX_USER_PASSWORD")
    realm: str = Field("pam", alias="PROXMOXVE_PROXMOX_REALM")
    pool: str = Field("", alias="PROXMOXVE_PROXMOX_POOL")
    verify_ssl: bool = Field(False, alias="PROXMOXVE_PROXMOX_VERIFY_SSL")

    # Параметры ВМ
    vmid_range: str = Field("", alias="PROXMOXVE_VM_VMID_RANGE")
    clone_vmid: str = Field("", alias="PROXMOXVE_VM_CLONE_VMID")
    storage: str = Field("", alias="PROXMOXVE_VM_STORAGE_PATH")
    disk_size: str = Field("16", alias="PROXMOXVE_VM_STORAGE_SIZE")
    storage_type: str = Field("", alias="PROXMOXVE_VM_STORAGE_TYPE")
    scsi_controller: str = Field("virtio-scsi-pci", alias="PROXMOXVE_VM_SCSI_CONTROLLER")
    scsi_attributes: str = Field("", alias="PROXMOXVE_VM_SCSI_ATTRIBUTES")
    memory_gb: int = Field(8, alias="PROXMOXVE_VM_MEMORY")
    numa: str = Field("", alias="PROXMOXVE_VM_NUMA")
    cpu: str = Field("", alias="PROXMOXVE_VM_CPU")
    cpu_sockets: str = Field("", alias="PROXMOXVE_VM_CPU_SOCKETS")
    cpu_cores: str = Field("", alias="PROXMOXVE_VM_CPU_CORES")
    onboot: str = Field("", alias="PROXMOXVE_VM_START_ONBOOT")
    protection: str = Field("", alias="PROXMOXVE_VM_PROTECTION")
    citype: str = Field("nocloud", alias="PROXMOXVE_VM_CITYPE")
    image_file: str = Field("", alias="PROXMOXVE_VM_IMAGE_FILE")

    # Сеть
    net_model: str = Field("virtio", alias="PROXMOXVE_VM_NET_MODEL")
    net_firewall: str = Field("", alias="PROXMOXVE_VM_NET_FIREWALL")
    net_mtu: str = Field("", alias="PROXMOXVE_VM_NET_MTU")
    net_bridge: str = Field("", alias="PROXMOXVE_VM_NET_BRIDGE")
    net_vlan_tag: int = Field(0, alias="PROXMOXVE_VM_NET_TAG")

    # SSH в гостевую ОС
    ssh_username: str = Field("", alias="PROXMOXVE_SSH_USERNAME")
    ssh_password: str = Field("", alias="PROXMOXVE_SSH_PASSWORD")
    ssh_port: int = Field(22, alias="PROXMOXVE_SSH_PORT")

    debug: bool = Field(False, alias="PROXMOXVE_DEBUG_DRIVER")

    # Тайминги ожидания задач и guest-agent
    task_poll_interval: float = Field(5.0, alias="PROXMOXVE_TASK_POLL_INTERVAL")
    task_timeout: float = Field(300.0, alias="PROXMOXVE_TASK_TIMEOUT")
    agent_timeout: float = Field(300.0, alias="PROXMOXVE_AGENT_TIMEOUT")
    agent_poll_interval: float = Field(1.0, alias="PROXMOXVE_AGENT_POLL_INTERVAL")

    config_apply_retries: int = Field(1, alias="PROXMOXVE_CONFIG_APPLY_RETRIES")
    config_apply_backoff: float = Field(2.0, alias="PROXMOXVE_CONFIG_APPLY_BACKOFF")

    docker_port: int = Field(2376, alias="PROXMOXVE_DOCKER_PORT")
    store_path: str = Field("~/.docker/machine", alias="PROXMOXVE_STORE_PATH")

    # Отправка логов в OpenSearch (пустой host: выключено)
    opensearch_host: str = Field("", alias="PROXMOXVE_OPENSEARCH_HOST")
    opensearch_port: int = Field(9200, alias="PROXMOXVE_OPENSEARCH_PORT")
    opensearch_user: str = Field("admin", alias="PROXMOXVE_OPENSEARCH_USER")
    opensearch_password: str = Field("", alias="PROXMOXVE_OPENSEARCH_PASSWORD")
    opensearch_index: str = Field("pve-machine-driver", alias="PROXMOXVE_OPENSEARCH_INDEX")

    class Config:
        env_file = str(env_path)
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"

    def __init__(self, **values):
        super().__init__(**values)
        # сразу залогируем конфиг
        self.log_config()

    @field_validator("port", mode="before")
    @classmethod
    def _default_port(cls, value):
        # пустая строка из окружения: порт API по умолчанию
        if value in ("", None):
            return 8006
        return value

    @field_validator("storage_type")
    @classmethod
    def _lower_storage_type(cls, value: str) -> str:
        return value.lower()

    @model_validator(mode="after")
    def _node_defaults_to_host(self):
        if not self.node:
            self.node = self.host
        return self

    @property
    def memory_mb(self) -> int:
        """Память задаётся в GB, а в Proxmox пишется в MiB."""
        return self.memory_gb * 1024

    @property
    def logger(self) -> logging.Logger:
        """Логгер с именем класса Config."""
        return logging.getLogger(self.__class__.__name__)

    def log_config(self) -> None:
        """
        Логирует все параметры:
            - помечает (env), если взято из os.environ,
            - или (default), если используется значение по умолчанию.
        Секреты маскируются.
        """
        for field_name, model_field in type(self).model_fields.items():
            env_key = model_field.alias or field_name
            value = getattr(self, field_name)
            if field_name in _SECRET_FIELDS and value:
                value = "***"
            source = "env" if env_key in os.environ else "default"
            self.logger.debug("%s=%r (%s)", env_key, value, source)


cfg = Config()
