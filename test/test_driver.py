import json
import logging

import pytest
from proxmoxer.core import ResourceException

from pvedriver import DRIVER_NAME, ProxmoxDriver
from pvedriver.__main__ import main, run
from pvedriver.domain.discovery import VmState
from conftest import MAC
from pvedriver.infrastructure.logger.log_ctx import _LOG_CTX, set_context
from pvedriver.infrastructure.proxmox.client import IPAddress, NetworkInterfaceReport
from pvedriver.shared.exceptions import NoIPAssignedError, VMIDNotSetError
from pvedriver.shared.state import DriverState


def test_vm_operations_need_vmid(driver, cluster):
    with pytest.raises(VMIDNotSetError):
        driver.start()
    with pytest.raises(VMIDNotSetError):
        driver.get_state()
    assert cluster.calls == []


def test_url_and_ssh_getters(driver):
    driver.bind_vmid(100)

    assert driver.get_url() == "tcp://10.0.0.15:2376"
    assert driver.get_ssh_hostname() == "10.0.0.15"
    assert driver.get_ssh_port() == 22
    assert driver.get_ssh_username() == ""
    assert driver.ip_address == "10.0.0.15"


def test_static_getters(driver, tmp_path):
    assert driver.driver_name() == DRIVER_NAME == "proxmoxve"
    assert driver.get_machine_name() == "worker-1"
    assert driver.get_net_bridge() == ""
    assert driver.get_net_vlan_tag() == 0
    assert driver.get_ssh_key_path() == str(tmp_path / "machines" / "worker-1" / "id_rsa")


def test_lifecycle_goes_through_bound_vm(driver, cluster):
    driver.bind_vmid(9001)
    driver.restart()
    driver.kill()
    driver.remove()
    assert cluster.calls == [
        ("reset", 9001), ("stop", 9001), ("stop", 9001), ("delete", 9001),
    ]


def test_state(driver, cluster):
    driver.bind_vmid(9001)
    cluster.status = "stopped"
    assert driver.get_state().state is VmState.STOPPED


def test_connect_is_lazy(config, tmp_path, mocker):
    connection = mocker.Mock(connected=False)
    driver = ProxmoxDriver("worker-1", store_path=str(tmp_path), config=config, connection=connection)

    driver.pre_create_check()
    connection.connect.assert_called_once()

    connection.connected = True
    driver.connect()
    connection.connect.assert_called_once()

    driver.reconnect()
    connection.reconnect.assert_called_once()


def test_state_survives_restart(driver, config, tmp_path):
    driver.bind_vmid(9001)
    driver.ip_address = "10.0.0.15"
    path = driver.save_state()

    assert json.loads(path.read_text())["vmid"] == 9001

    other = ProxmoxDriver("worker-1", store_path=str(tmp_path), config=config, connection=driver.connection)
    other.load_state()
    assert other.vmid == 9001
    assert other.ip_address == "10.0.0.15"


def test_missing_state_file(tmp_path):
    state = DriverState.load(tmp_path / "nothing", "worker-2")
    assert state == DriverState(machine_name="worker-2")


# ───────── CLI ─────────

def test_run_state_reports_unknown_with_error(driver, cluster):
    driver.bind_vmid(9001)
    cluster.status_error = ResourceException(595, "No route to host", "")
    assert run(driver, "state").startswith("Unknown (")


def test_run_dispatch(driver, cluster):
    driver.bind_vmid(9001)
    assert run(driver, "state") == "Running"
    assert run(driver, "ssh-port") == 22
    assert run(driver, "stop") is None
    assert cluster.calls == [("stop", 9001)]


@pytest.fixture
def cli(mocker):
    mocker.patch(
        "pvedriver.__main__.setup_logger",
        return_value=(logging.getLogger("pvedriver"), lambda: None),
    )
    return mocker.patch("pvedriver.__main__.ProxmoxDriver")


def test_main_prints_result(cli, capsys):
    cli.return_value.get_ssh_port.return_value = 22

    assert main(["ssh-port", "worker-1"]) == 0

    assert capsys.readouterr().out.strip() == "22"
    cli.return_value.load_state.assert_called_once()
    cli.return_value.save_state.assert_called_once()


def test_main_saves_state_after_failure(cli):
    cli.return_value.stop.side_effect = VMIDNotSetError("worker-1")

    assert main(["stop", "worker-1"]) == 1
    cli.return_value.save_state.assert_called_once()


def test_main_rejects_unknown_operation(cli):
    with pytest.raises(SystemExit):
        main(["suspend", "worker-1"])


def test_url_without_ipv4_raises(driver, cluster):
    driver.bind_vmid(100)
    cluster.interfaces = [NetworkInterfaceReport("eth0", MAC, [IPAddress("fe80::1", "ipv6")])]

    with pytest.raises(NoIPAssignedError):
        driver.get_url()
    assert driver.ip_address == ""


def test_driver_remove_goes_through_lifecycle(driver, cluster, mocker):
    operate = mocker.spy(driver.lifecycle, "operate")
    driver.bind_vmid(9001)

    driver.remove()

    operate.assert_called_once_with("remove")
    assert cluster.calls == [("stop", 9001), ("delete", 9001)]


def test_main_clears_log_context(cli):
    set_context(vm_name="stale", vmid=1)
    cli.return_value.get_ssh_port.return_value = 22

    main(["ssh-port", "worker-1"])

    assert _LOG_CTX.get() == {}
