# pvedriver/shared/state.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

STATE_FILE = "driver.json"


class DriverState(BaseModel):
    """То, что должно пережить перезапуск процесса: привязанный VMID и IP."""
    machine_name: str
    vmid: Optional[int] = None
    ip_address: str = ""

    @staticmethod
    def path_for(machine_dir: Path) -> Path:
        return Path(machine_dir) / STATE_FILE

    def save(self, machine_dir: Path) -> Path:
        path = self.path_for(machine_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2))
        logger.debug("Состояние драйвера сохранено в %s", path)
        return path

    @classmethod
    def load(cls, machine_dir: Path, machine_name: str) -> "DriverState":
        path = cls.path_for(machine_dir)
        if not path.exists():
            return cls(machine_name=machine_name)
        return cls.model_validate_json(path.read_text())
