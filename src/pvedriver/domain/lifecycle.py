import enum
import logging
from typing import Callable, Dict, Union

from ..services.tasks import TaskSupervisor
from ..shared.exceptions import InvalidOperationError


class Operation(str, enum.Enum):
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    KILL = "kill"
    REMOVE = "remove"


# KILL идёт тем же мягким stop, что и STOP.
# REMOVE составная (stop, затем delete), её ведёт LifecycleController.remove
HANDLERS: Dict[Operation, Callable] = {
    Operation.START: lambda vm: vm.start(),
    Operation.STOP: lambda vm: vm.stop(),
    Operation.KILL: lambda vm: vm.stop(),
    Operation.RESTART: lambda vm: vm.reset(),
}


class LifecycleController:
    """start / stop / restart / kill / remove поверх TaskSupervisor."""

    def __init__(self, vm_provider: Callable, supervisor: TaskSupervisor) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        # ВМ берётся заново на каждую операцию
        self.vm_provider = vm_provider
        self.supervisor = supervisor

    @staticmethod
    def resolve(operation: Union[Operation, str]) -> Operation:
        try:
            return Operation(operation)
        except ValueError:
            raise InvalidOperationError(str(operation)) from None

    def operate(self, operation: Union[Operation, str]) -> None:
        op = self.resolve(operation)
        if op is Operation.REMOVE:
            self.remove()
            return
        vm = self.vm_provider()
        self.logger.info(f"{op.value} VM {vm.vmid}...")
        self.supervisor.run(lambda: HANDLERS[op](vm), op.value)
        self.logger.info(f"VM {vm.vmid}: {op.value} завершён.")

    def remove(self) -> None:
        """
        stop, затем delete. Если stop упал, delete не вызывается
        и ВМ остаётся в том состоянии, в котором её оставил stop.
        """
        vm = self.vm_provider()
        self.logger.info(f"Удаление VM {vm.vmid}...")
        self.supervisor.run(lambda: vm.stop(), "stop")
        self.supervisor.run(lambda: vm.delete(), "delete")
        self.logger.info(f"VM {vm.vmid} была удалена.")
