"""Operation families.

Static import of every family so its templates and ``@operation`` handlers
are registered when this package is imported. Dynamic discovery via pkgutil
does not survive frozen single-file builds, so the list is explicit.
"""

from __future__ import annotations

from winadmin.operations import (  # noqa: F401
    active_directory,
    admin,
    backup,
    devices,
    disks,
    event_viewer,
    hardware,
    network,
    security,
    services,
    shares,
    system,
    tasks,
    updates,
    users,
)
from winadmin.operations.base import (
    OPERATIONS,
    NoArgs,
    OperationError,
    OperationRegistry,
    OperationSpec,
    operation,
)

__all__ = [
    "OPERATIONS",
    "NoArgs",
    "OperationError",
    "OperationRegistry",
    "OperationSpec",
    "operation",
]
