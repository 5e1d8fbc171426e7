from __future__ import annotations

from .base import OSAdapter
from .posix import PosixAdapter
from .windows import WindowsAdapter


def get_os_adapter() -> OSAdapter:
    """Return an OS-specific adapter instance.

    - Windows: WindowsAdapter
    - Others: PosixAdapter
    """
    import os

    if os.name == "nt":
        return WindowsAdapter()
    return PosixAdapter()


__all__ = ["OSAdapter", "PosixAdapter", "WindowsAdapter", "get_os_adapter"]
