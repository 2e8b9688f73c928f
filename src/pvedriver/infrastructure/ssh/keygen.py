import os
import logging
from pathlib import Path

import paramiko

from ...shared.exceptions import SSHKeyError

logger = logging.getLogger(__name__)

KEY_BITS = 2048


def generate_ssh_key(path: str) -> None:
    """
    Создаёт пару RSA-ключей: приватный в path (0600), публичный в path + ".pub"
    в формате authorized_keys.
    """
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        key = paramiko.RSAKey.generate(bits=KEY_BITS)
        key.write_private_key_file(path)
        with open(f"{path}.pub", "w") as f:
            f.write(f"{key.get_name()} {key.get_base64()}\n")
        os.chmod(path, 0o600)
    except (OSError, paramiko.SSHException) as e:
        raise SSHKeyError(path, logger=logger, details=str(e)) from e
    logger.debug("SSH-ключ создан: %s", path)


def read_public_key(path: str) -> str:
    try:
        with open(f"{path}.pub") as f:
            return f.read()
    except OSError as e:
        raise SSHKeyError(path, logger=logger, details=str(e)) from e
