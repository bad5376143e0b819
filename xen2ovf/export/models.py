# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/export/models.py

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import List, Optional

from ..ovf.envelope import Envelope

DEFAULT_BOOT_POLICY = "BIOS order"
DEFAULT_IMAGE_EXT = "vhd"


@dataclass(frozen=True)
class TransferNetwork:
    """
    Where disk data is pulled from.

    static=False: the pool master's address on `network_uuid` (or the
    session host when no network is set). static=True: `ip` is used as is.
    """
    network_uuid: Optional[str] = None
    static: bool = False
    ip: Optional[str] = None
    netmask: Optional[str] = None
    gateway: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.static:
            return
        if not self.ip:
            raise ValueError("Static transfer network requires an IP address")
        ipaddress.ip_address(self.ip)
        if self.gateway:
            ipaddress.ip_address(self.gateway)
        if self.netmask:
            ipaddress.ip_network(f"{self.ip}/{self.netmask}", strict=False)


@dataclass
class ExportOptions:
    auto_save: bool = True
    verify_disks: bool = False
    metadata_only: bool = False
    image_ext: str = DEFAULT_IMAGE_EXT
    boot_policy: str = DEFAULT_BOOT_POLICY
    chunk_bytes: int = 4 * 1024 * 1024
    insecure: bool = False
    show_progress: bool = True
    network: TransferNetwork = field(default_factory=TransferNetwork)


@dataclass(frozen=True)
class VdiReference:
    """One disk queued for transport, in enumeration order."""
    vdi_ref: str
    storage_id: str
    file_id: str
    index: int


@dataclass
class MappedVM:
    vm_ref: str
    name: str
    envelope: Envelope
    vdi_refs: List[VdiReference] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
