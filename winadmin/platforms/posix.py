from __future__ import annotations

import os

from .base import BaseOSAdapter


class PosixAdapter(BaseOSAdapter):
    """Used off Windows: native executables and ``pwsh`` only."""

    def is_elevated(self) -> bool:
        return os.geteuid() == 0
