# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""Export pipeline: mapping, disk transport and batch orchestration."""

from __future__ import annotations

from .events import EventReporter, LoggingEventSink, RecordingEventSink, TransportEvent, TransportStep
from .mapper import VMDescriptorMapper
from .models import ExportOptions, MappedVM, TransferNetwork, VdiReference
from .namer import DiskNamer
from .orchestrator import Exporter
from .transport import HTTPDiskTransport

__all__ = [
    "DiskNamer",
    "EventReporter",
    "ExportOptions",
    "Exporter",
    "HTTPDiskTransport",
    "LoggingEventSink",
    "MappedVM",
    "RecordingEventSink",
    "TransferNetwork",
    "TransportEvent",
    "TransportStep",
    "VMDescriptorMapper",
    "VdiReference",
]
