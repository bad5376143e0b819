# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""OVF envelope model and serialization."""

from __future__ import annotations

from .envelope import DiskDescriptor, Envelope, EnvelopeError, VirtualSystem, merge
from .writer import save_as, to_xml

__all__ = [
    "DiskDescriptor",
    "Envelope",
    "EnvelopeError",
    "VirtualSystem",
    "merge",
    "save_as",
    "to_xml",
]
