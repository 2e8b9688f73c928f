from urllib.parse import unquote

import pytest

from pvedriver.domain.provisioner import PRIMARY_DISK, Provisioner, Stage
from pvedriver.domain.vmid import RangeVmIdAllocator
from pvedriver.shared.exceptions import (
    AgentUnavailableError,
    ConfigApplyError,
    InvalidRangeError,
    ProxmoxDriverError,
    TaskFailedError,
)

NEW_VMID = 9042


class FixedAllocator:
    def __init__(self, vmid):
        self.vmid = vmid

    def allocate(self):
        return self.vmid


@pytest.fixture
def pinned(driver):
    driver.allocator = FixedAllocator(NEW_VMID)
    return driver


def config_calls(cluster):
    return [(c[2], c[3]) for c in cluster.calls if c[0] == "config"]


def test_create_happy_path(pinned, cluster):
    ip = pinned.create()

    assert ip == "10.0.0.15"
    assert pinned.vmid == NEW_VMID
    assert pinned.ip_address == "10.0.0.15"

    ops = [c[0] for c in cluster.calls]
    assert ops[0] == "clone"
    assert cluster.calls[0] == ("clone", 100, NEW_VMID)
    assert cluster.calls[1] == ("resize", NEW_VMID, PRIMARY_DISK, "32G")
    assert ops[-1] == "start"

    keys = [k for k, _ in config_calls(cluster)]
    assert keys == ["agent", "autostart", "memory", "sockets", "cores", "kvm", "citype", "sshkeys"]

    values = dict(config_calls(cluster))
    assert values["memory"] == "8192"
    assert values["sockets"] == "1"
    assert values["cores"] == "4"
    assert values["citype"] == "nocloud"
    assert "onboot" not in values and "protection" not in values


def test_stages_are_recorded_in_order(pinned):
    provisioner = Provisioner(pinned)
    provisioner.run()

    assert provisioner.completed == [
        Stage.ALLOCATE_ID,
        Stage.CLONE,
        Stage.RESIZE_DISK,
        Stage.APPLY_BASE_CONFIG,
        Stage.APPLY_NETWORK_CONFIG,
        Stage.APPLY_NUMA_CPU_OVERRIDES,
        Stage.INJECT_CREDENTIALS,
        Stage.START,
        Stage.AWAIT_GUEST_AGENT_IP,
        Stage.READY,
    ]


def test_ssh_key_is_written_next_to_machine(pinned, cluster):
    pinned.create()
    assert pinned.machine_dir.joinpath("id_rsa.pub").exists()
    sshkeys = unquote(dict(config_calls(cluster))["sshkeys"])
    assert sshkeys.startswith("ssh-rsa AAAAB3NzaC1yc2E+new/key== worker-1-")


def test_config_failure_reports_applied_and_pending(pinned, cluster):
    cluster.fail_config.add("cores")

    with pytest.raises(ConfigApplyError) as exc:
        pinned.create()

    err = exc.value
    assert err.key == "cores"
    assert err.applied == ["agent", "autostart", "memory", "sockets"]
    assert err.pending == ["kvm", "citype"]
    assert isinstance(err.__cause__, TaskFailedError)

    # после упавшего параметра ничего не отправляется
    assert cluster.calls[-1] == ("config", NEW_VMID, "cores", "4")
    assert "start" not in [c[0] for c in cluster.calls]
    # клон уже есть, VMID привязан
    assert pinned.vmid == NEW_VMID


def test_clone_failure_leaves_vmid_unbound(pinned, cluster):
    cluster.fail_ops.add("clone")

    with pytest.raises(TaskFailedError):
        pinned.create()

    assert pinned.vmid is None
    assert [c[0] for c in cluster.calls] == ["clone"]


def test_bad_range_fails_before_any_call(driver, cluster):
    driver.allocator = RangeVmIdAllocator("9100:9000")

    with pytest.raises(InvalidRangeError):
        driver.create()

    assert cluster.calls == []


def test_bad_template_vmid(pinned, cluster):
    pinned.config = pinned.config.model_copy(update={"clone_vmid": "template"})

    with pytest.raises(ProxmoxDriverError):
        pinned.create()

    assert cluster.calls == []


def test_agent_timeout_after_start(pinned, cluster):
    cluster.agent_pings = [False] * 1000

    with pytest.raises(AgentUnavailableError):
        pinned.create()

    assert cluster.calls[-1] == ("start", NEW_VMID)
    assert pinned.ip_address == ""


def test_optional_network_and_overrides(pinned, cluster):
    pinned.config = pinned.config.model_copy(update={
        "net_bridge": "vmbr1",
        "net_vlan_tag": 30,
        "numa": "1",
        "cpu": "host",
    })
    provisioner = Provisioner(pinned)
    provisioner.allocate_id()
    provisioner.clone()
    provisioner.apply_network_config()
    provisioner.apply_numa_cpu_overrides()

    assert config_calls(cluster) == [
        ("net0", "model=virtio,bridge=vmbr1,tag=30"),
        ("numa", "1"),
        ("cpu", "host"),
    ]


def test_memory_is_written_in_mib(pinned, cluster):
    pinned.config = pinned.config.model_copy(update={"memory_gb": 2})
    pinned.create()
    assert dict(config_calls(cluster))["memory"] == "2048"
