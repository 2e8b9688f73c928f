from .domain.driver import DRIVER_NAME, ProxmoxDriver
from .domain.discovery import StateReport, VmState
from .domain.lifecycle import Operation

__all__ = ["DRIVER_NAME", "ProxmoxDriver", "StateReport", "VmState", "Operation"]
__version__ = "0.3.0"
