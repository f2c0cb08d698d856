from __future__ import annotations

import os
import shutil

from subburn.exceptions import DependencyMissingError


def require_binary(binary: str) -> str:
    path = shutil.which(binary)
    if path is None:
        raise DependencyMissingError(
            f"Missing required dependency '{binary}'. Install it and try again."
        )
    return path


def device_accessible(path: str) -> bool:
    """True when a device node exists and is readable and writable."""
    return os.path.exists(path) and os.access(path, os.R_OK | os.W_OK)
