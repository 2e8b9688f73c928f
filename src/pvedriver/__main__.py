import sys
import argparse

from .domain.driver import ProxmoxDriver
from .infrastructure.logger.log_ctx import clear_context, set_context
from .infrastructure.logger.logger_setup import setup_logger
from .shared.exceptions import ProxmoxDriverError
from .shared.settings import cfg

OPERATIONS = (
    "create", "start", "stop", "restart", "kill", "remove",
    "state", "ip", "url", "ssh-hostname", "ssh-port", "ssh-username",
)


def run(driver: ProxmoxDriver, operation: str):
    if operation == "create":
        driver.pre_create_check()
        return driver.create()
    if operation == "state":
        report = driver.get_state()
        if report.error:
            return f"{report.state.value} ({report.error})"
        return report.state.value
    if operation == "ip":
        return driver.get_ip()
    if operation == "url":
        return driver.get_url()
    if operation == "ssh-hostname":
        return driver.get_ssh_hostname()
    if operation == "ssh-port":
        return driver.get_ssh_port()
    if operation == "ssh-username":
        return driver.get_ssh_username()
    getattr(driver, operation)()
    return None


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="pve-machine-driver")
    parser.add_argument("operation", choices=OPERATIONS)
    parser.add_argument("machine", help="имя машины (имя ВМ в Proxmox)")
    parser.add_argument("--store-path", default=None, help="каталог состояния машин")
    args = parser.parse_args(argv)

    logger, stop_logger = setup_logger(cfg)
    set_context(vm_name=args.machine)
    driver = ProxmoxDriver(args.machine, store_path=args.store_path, config=cfg)
    driver.load_state()
    try:
        result = run(driver, args.operation)
        if result is not None:
            print(result)
        return 0
    except ProxmoxDriverError as e:
        logger.error("%s %s: %s", args.operation, args.machine, e)
        return 1
    finally:
        # VMID сохраняется даже после неудачного create, ВМ уже может существовать
        driver.save_state()
        stop_logger()
        clear_context()


if __name__ == "__main__":
    sys.exit(main())
