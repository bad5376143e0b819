# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/ovf/envelope.py
"""
In-memory OVF envelope.

The envelope is built incrementally by the mapper, finalized once, and
serialized by `xen2ovf.ovf.writer`. Disk descriptors never hold filenames;
they point at a `FileReference` by file id, so renaming an exported image is
a single update of `Envelope.files`.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from . import messages as M

# CIM_ResourceAllocationSettingData.ResourceType
RESOURCE_CPU = 3
RESOURCE_MEMORY = 4
RESOURCE_ETHERNET = 10
RESOURCE_CDROM = 15
RESOURCE_DISK = 17


class EnvelopeError(ValueError):
    """Envelope is structurally invalid or an id does not resolve."""


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class FileReference:
    file_id: str
    href: str
    size: Optional[int] = None


@dataclass
class NetworkRecord:
    network_id: str
    name: str
    description: str = ""


@dataclass
class DiskDescriptor:
    disk_id: str
    file_id: str
    capacity: int
    allocated_size: int
    bootable: bool = False
    caption: str = ""
    description: str = ""
    device: Optional[str] = None


@dataclass
class ResourceItem:
    instance_id: str
    resource_type: int
    caption: str
    description: str = ""
    connection: Optional[str] = None
    address: Optional[str] = None
    host_resource: Optional[str] = None
    address_on_parent: Optional[str] = None


@dataclass
class SystemSettings:
    instance_id: str
    identifier: str
    element_name: str
    caption: str
    description: str
    virtual_system_type: str


@dataclass
class OperatingSystemSection:
    os_id: int
    name: str
    description: str


@dataclass
class StartupSection:
    order: int
    start_delay: int
    stop_delay: int


@dataclass
class OtherSystemSetting:
    name: str
    value: str
    description: str = ""


@dataclass
class VirtualHardwareSection:
    section_id: str
    settings: Optional[SystemSettings] = None
    cpus: Optional[int] = None
    memory_mb: Optional[int] = None
    memory_units: str = "MB"
    items: List[ResourceItem] = field(default_factory=list)


@dataclass
class VirtualSystem:
    system_id: str
    name: str
    hardware: Optional[VirtualHardwareSection] = None
    operating_system: Optional[OperatingSystemSection] = None
    startup: Optional[StartupSection] = None
    other_settings: List[OtherSystemSetting] = field(default_factory=list)
    disk_ids: List[str] = field(default_factory=list)

    def setting(self, name: str) -> Optional[OtherSystemSetting]:
        for s in self.other_settings:
            if s.name == name:
                return s
        return None

    def items_of_type(self, resource_type: int) -> List[ResourceItem]:
        if self.hardware is None:
            return []
        return [it for it in self.hardware.items if it.resource_type == resource_type]


@dataclass
class Envelope:
    name: str
    systems: List[VirtualSystem] = field(default_factory=list)
    files: Dict[str, FileReference] = field(default_factory=dict)
    disks: Dict[str, DiskDescriptor] = field(default_factory=dict)
    networks: Dict[str, NetworkRecord] = field(default_factory=dict)
    finalized: bool = False

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------
    def system(self, vs_id: str) -> VirtualSystem:
        for vs in self.systems:
            if vs.system_id == vs_id:
                return vs
        raise EnvelopeError(f"Unknown virtual system id: {vs_id}")

    def _hardware(self, vs_id: str) -> VirtualHardwareSection:
        vs = self.system(vs_id)
        if vs.hardware is None:
            raise EnvelopeError(f"Virtual system {vs.name} has no hardware section")
        return vs.hardware

    def _item(self, vs_id: str, rasd_id: str) -> ResourceItem:
        for it in self._hardware(vs_id).items:
            if it.instance_id == rasd_id:
                return it
        raise EnvelopeError(f"Unknown resource item id: {rasd_id}")

    def filename_of(self, disk_id: str) -> str:
        disk = self.disks.get(disk_id)
        if disk is None:
            raise EnvelopeError(f"Unknown disk id: {disk_id}")
        return self.files[disk.file_id].href

    def filenames(self) -> List[str]:
        return [f.href for f in self.files.values()]

    # ------------------------------------------------------------------
    # building
    # ------------------------------------------------------------------
    def add_virtual_system(self, name: str) -> str:
        vs = VirtualSystem(system_id=new_id(), name=name)
        self.systems.append(vs)
        return vs.system_id

    def add_virtual_hardware_section(self, vs_id: str) -> str:
        vs = self.system(vs_id)
        vs.hardware = VirtualHardwareSection(section_id=new_id())
        return vs.hardware.section_id

    def update_operating_system_section(self, vs_id: str, name: str, description: str, os_id: int) -> None:
        self.system(vs_id).operating_system = OperatingSystemSection(os_id=os_id, name=name, description=description)

    def add_virtual_system_setting_data(
        self,
        vs_id: str,
        vhs_id: str,
        name: str,
        caption: str,
        description: str,
        instance_id: str,
        system_type: str,
    ) -> None:
        hw = self._hardware(vs_id)
        if hw.section_id != vhs_id:
            raise EnvelopeError(f"Hardware section {vhs_id} does not belong to {vs_id}")
        hw.settings = SystemSettings(
            instance_id=instance_id,
            identifier=name,
            element_name=name,
            caption=caption,
            description=description or "",
            virtual_system_type=system_type,
        )

    def set_cpus(self, vs_id: str, count: int) -> None:
        self._hardware(vs_id).cpus = int(count)

    def set_memory(self, vs_id: str, size: int, units: str = "MB") -> None:
        hw = self._hardware(vs_id)
        hw.memory_mb = int(size)
        hw.memory_units = units

    def add_network(self, vs_id: str, network_id: str, name: str, description: str, mac: str) -> str:
        # Keyed by network id: two VIFs on one network share one NetworkRecord.
        if network_id not in self.networks:
            self.networks[network_id] = NetworkRecord(network_id=network_id, name=name or network_id, description=description or "")
        item = ResourceItem(
            instance_id=new_id(),
            resource_type=RESOURCE_ETHERNET,
            caption=M.NIC_CAPTION.format(network=name or network_id),
            description=M.NIC_DESCRIPTION,
            connection=network_id,
            address=mac or None,
        )
        self._hardware(vs_id).items.append(item)
        return item.instance_id

    def add_startup_section(self, vs_id: str, order: int, start_delay: int, stop_delay: int) -> None:
        self.system(vs_id).startup = StartupSection(order=int(order), start_delay=int(start_delay), stop_delay=int(stop_delay))

    def add_cdrom(self, vs_id: str, device_id: str, caption: str, description: str) -> str:
        item = ResourceItem(
            instance_id=device_id or new_id(),
            resource_type=RESOURCE_CDROM,
            caption=caption,
            description=description,
        )
        self._hardware(vs_id).items.append(item)
        return item.instance_id

    def set_target_device(self, vs_id: str, rasd_id: str, device: Optional[str]) -> None:
        it = self._item(vs_id, rasd_id)
        it.address_on_parent = device or None
        if it.host_resource is not None and rasd_id in self.disks:
            self.disks[rasd_id].device = it.address_on_parent

    def add_disk(
        self,
        vs_id: str,
        disk_id: str,
        filename: str,
        bootable: bool,
        caption: str,
        description: str,
        allocated_size: int,
        capacity: int,
    ) -> DiskDescriptor:
        vs = self.system(vs_id)
        hw = self._hardware(vs_id)
        if disk_id in self.disks:
            raise EnvelopeError(f"Duplicate disk id: {disk_id}")

        ref = FileReference(file_id=new_id(), href=filename)
        self.files[ref.file_id] = ref

        disk = DiskDescriptor(
            disk_id=disk_id,
            file_id=ref.file_id,
            capacity=int(capacity),
            allocated_size=int(allocated_size),
            bootable=bool(bootable),
            caption=caption or "",
            description=description or "",
        )
        self.disks[disk_id] = disk
        vs.disk_ids.append(disk_id)
        hw.items.append(
            ResourceItem(
                instance_id=disk_id,
                resource_type=RESOURCE_DISK,
                caption=disk.caption,
                description=disk.description,
                host_resource=f"ovf:/disk/{disk_id}",
            )
        )
        return disk

    def add_other_system_setting(
        self,
        vs_id: str,
        name: str,
        value: str,
        description: str = "",
        multiple: bool = False,
    ) -> None:
        vs = self.system(vs_id)
        setting = OtherSystemSetting(name=name, value=value, description=description)
        if not multiple:
            for i, s in enumerate(vs.other_settings):
                if s.name == name:
                    vs.other_settings[i] = setting
                    return
        vs.other_settings.append(setting)

    # ------------------------------------------------------------------
    # renaming
    # ------------------------------------------------------------------
    def update_filename(self, old: str, new: str) -> int:
        """Point every file reference named `old` at `new`. Returns the count."""
        n = 0
        for ref in self.files.values():
            if ref.href == old:
                ref.href = new
                n += 1
        return n

    def rename_file(self, file_id: str, new: str) -> None:
        ref = self.files.get(file_id)
        if ref is None:
            raise EnvelopeError(f"Unknown file id: {file_id}")
        ref.href = new

    # ------------------------------------------------------------------
    # closing
    # ------------------------------------------------------------------
    def validate(self) -> List[str]:
        problems: List[str] = []
        if not self.systems:
            problems.append("envelope has no virtual systems")
        for ref in self.files.values():
            if not ref.href:
                problems.append(f"file {ref.file_id} has an empty href")
        for vs in self.systems:
            if vs.hardware is None:
                problems.append(f"virtual system {vs.name} has no hardware section")
            elif vs.hardware.settings is None:
                problems.append(f"virtual system {vs.name} has no system settings")
            for disk_id in vs.disk_ids:
                disk = self.disks.get(disk_id)
                if disk is None:
                    problems.append(f"virtual system {vs.name} references unknown disk {disk_id}")
                elif disk.file_id not in self.files:
                    problems.append(f"disk {disk_id} references unknown file {disk.file_id}")
        return problems

    def finalize(self) -> "Envelope":
        problems = self.validate()
        if problems:
            raise EnvelopeError("; ".join(problems))
        self.finalized = True
        return self


def merge(envelopes: Iterable[Envelope], name: str) -> Envelope:
    """
    Combine per-VM envelopes into one package envelope, preserving order.
    """
    out = Envelope(name=name)
    for env in envelopes:
        out.systems.extend(env.systems)
        out.files.update(env.files)
        out.disks.update(env.disks)
        for net_id, net in env.networks.items():
            out.networks.setdefault(net_id, net)
    return out.finalize() if out.systems else out
