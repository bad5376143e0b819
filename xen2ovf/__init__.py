# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""
xen2ovf: export XenServer / XCP-ng virtual machines as OVF packages.
"""

from __future__ import annotations

__version__ = "0.0.1"

from .core.cancel import CancellationToken
from .core.exceptions import (
    DiskTransferError,
    ExportCancelled,
    ExportFailedError,
    InvalidVMStateError,
    VMNotFoundError,
    Xen2OvfError,
)
from .export import EventReporter, ExportOptions, Exporter, TransferNetwork, TransportEvent, TransportStep
from .ovf import Envelope, save_as

__all__ = [
    "__version__",
    "CancellationToken",
    "DiskTransferError",
    "Envelope",
    "EventReporter",
    "ExportCancelled",
    "ExportFailedError",
    "ExportOptions",
    "Exporter",
    "InvalidVMStateError",
    "TransferNetwork",
    "TransportEvent",
    "TransportStep",
    "VMNotFoundError",
    "Xen2OvfError",
    "save_as",
]
