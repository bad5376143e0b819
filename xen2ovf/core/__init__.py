# SPDX-License-Identifier: LGPL-3.0-or-later
# xen2ovf/core/__init__.py
from .cancel import CancellationToken
from .exceptions import (
    DiskTransferError,
    ExportCancelled,
    ExportFailedError,
    InvalidVMStateError,
    VMNotFoundError,
    Xen2OvfError,
)

__all__ = [
    "CancellationToken",
    "Xen2OvfError",
    "VMNotFoundError",
    "InvalidVMStateError",
    "ExportFailedError",
    "DiskTransferError",
    "ExportCancelled",
]
