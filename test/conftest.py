import os

import pytest

from pvedriver.domain.driver import ProxmoxDriver
from pvedriver.infrastructure.proxmox.client import (
    IPAddress,
    NetworkInterfaceReport,
    TaskStatus,
)
from pvedriver.services.tasks import TaskSupervisor
from pvedriver.shared.settings import Config

MAC = "BC:24:11:AA:BB:CC"


# 🧪 Задача, которая отдаёт статусы по очереди (последний повторяется)
class FakeTask:
    def __init__(self, task_id="UPID:pve:0001:task:", statuses=None):
        self.id = task_id
        self.statuses = list(statuses or [TaskStatus("stopped", "OK")])
        self.polls = 0

    def poll(self) -> TaskStatus:
        self.polls += 1
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


def failed_task(task_id="UPID:pve:0002:fail:", exit_status="command failed"):
    return FakeTask(task_id, [TaskStatus("stopped", exit_status)])


# 🤖 In-memory кластер: записывает все вызовы в общий список
class FakeCluster:
    def __init__(self):
        self.calls = []
        self.vms = {}
        self.fail_ops = set()          # {"stop", "clone", ...}
        self.fail_config = set()       # ключи конфига, задача которых упадёт
        self.agent_pings = []          # очередь ответов ping; пусто → True
        self.interfaces = []
        self.status = "running"
        self.status_error = None

    def vm(self, vmid, **config):
        vm = self.vms.setdefault(int(vmid), FakeVm(self, int(vmid)))
        vm.cfg.update(config)
        return vm


class FakeNode:
    def __init__(self, cluster, name="pve"):
        self.cluster = cluster
        self.name = name

    def virtual_machine(self, vmid):
        return self.cluster.vm(vmid)


class FakeVm:
    def __init__(self, cluster, vmid):
        self.cluster = cluster
        self.vmid = vmid
        self.cfg = {}
        self._status = {}

    def _op(self, name, *args):
        self.cluster.calls.append((name, self.vmid) + args)
        if name in self.cluster.fail_ops:
            return failed_task(f"UPID:pve:{name}:{self.vmid}:")
        return FakeTask(f"UPID:pve:{name}:{self.vmid}:")

    def clone(self, request):
        task = self._op("clone", request.new_vmid)
        # клон наследует конфиг шаблона
        self.cluster.vm(request.new_vmid, **self.cfg)
        return request.new_vmid, task

    def start(self):
        return self._op("start")

    def stop(self):
        return self._op("stop")

    def reset(self):
        return self._op("reset")

    def delete(self):
        return self._op("delete")

    def resize_disk(self, disk, size):
        return self._op("resize", disk, size)

    def apply_config(self, key, value):
        self.cluster.calls.append(("config", self.vmid, key, value))
        if key in self.cluster.fail_config:
            return failed_task(f"UPID:pve:config-{key}:{self.vmid}:")
        self.cfg[key] = value
        return FakeTask(f"UPID:pve:config-{key}:{self.vmid}:")

    def config(self):
        return dict(self.cfg)

    def net_descriptor(self, interface="net0"):
        return self.cfg.get(interface, "")

    def ssh_keys(self):
        return self.cfg.get("sshkeys", "")

    def refresh_status(self):
        if self.cluster.status_error:
            raise self.cluster.status_error
        self._status = {"status": self.cluster.status}
        return self._status

    def is_running(self):
        return self._status.get("status") == "running"

    def is_stopped(self):
        return self._status.get("status") == "stopped"

    def ping_agent(self):
        if self.cluster.agent_pings:
            return self.cluster.agent_pings.pop(0)
        return True

    def agent_network_interfaces(self):
        return list(self.cluster.interfaces)


class FakeClock:
    """Время идёт только когда кто-то «спит»."""
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def cluster():
    c = FakeCluster()
    c.interfaces = [
        NetworkInterfaceReport("lo", "00:00:00:00:00:00", [IPAddress("127.0.0.1", "ipv4")]),
        NetworkInterfaceReport(
            "eth0", MAC.lower(),
            [IPAddress("fe80::be24:11ff:feaa:bbcc", "ipv6"), IPAddress("10.0.0.15", "ipv4")],
        ),
    ]
    return c


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def supervisor(fake_clock):
    sup = TaskSupervisor(poll_interval=5, timeout=300)
    sup.clock = fake_clock.monotonic
    sup.sleep = fake_clock.sleep
    return sup


@pytest.fixture
def config():
    return Config(
        host="pve.example.local",
        node="pve",
        password="secret",
        vmid_range="9000:9100",
        clone_vmid="100",
        disk_size="32",
        cpu_sockets="1",
        cpu_cores="4",
        net_bridge="",
        store_path="/tmp/unused",
    )


@pytest.fixture
def fake_keygen():
    """Вместо paramiko пишет готовый публичный ключ."""
    def _keygen(path):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(f"{path}.pub", "w") as f:
            f.write("ssh-rsa AAAAB3NzaC1yc2E+new/key== \n")
    return _keygen


@pytest.fixture
def driver(config, cluster, fake_clock, fake_keygen, tmp_path, mocker):
    """Драйвер, у которого вместо API FakeCluster, а вместо времени FakeClock."""
    mocker.patch("pvedriver.domain.ssh_keys.generate_ssh_key", fake_keygen)
    d = ProxmoxDriver("worker-1", store_path=str(tmp_path), config=config, connection=mocker.Mock())
    mocker.patch.object(d, "node", return_value=FakeNode(cluster))
    d.supervisor.clock = fake_clock.monotonic
    d.supervisor.sleep = fake_clock.sleep
    d.discovery.clock = fake_clock.monotonic
    d.discovery.sleep = fake_clock.sleep
    cluster.vm(100, net0=f"virtio={MAC},bridge=vmbr0", sshkeys="")
    return d
