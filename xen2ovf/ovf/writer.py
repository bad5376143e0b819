# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/ovf/writer.py
"""
Serialize an `Envelope` to an OVF 1.x descriptor.

Virtual systems are always wrapped in a VirtualSystemCollection named after
the package so the StartupSection has a legal home. Platform settings go to
`xenovf:VirtualSystemOtherConfigurationData` elements inside each
VirtualHardwareSection.
"""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional

from . import messages as M
from .envelope import (
    RESOURCE_CPU,
    RESOURCE_MEMORY,
    Envelope,
    ResourceItem,
    VirtualSystem,
)

LOG = logging.getLogger(__name__)

OVF_NS = "http://schemas.dmtf.org/ovf/envelope/1"
RASD_NS = "http://schemas.dmtf.org/wbem/wscim/1/cim-schema/2/CIM_ResourceAllocationSettingData"
VSSD_NS = "http://schemas.dmtf.org/wbem/wscim/1/cim-schema/2/CIM_VirtualSystemSettingData"
XENOVF_NS = "http://schemas.citrix.com/ovf/envelope/1"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"

VHD_FORMAT_URI = "http://technet.microsoft.com/en-us/virtualserver/bb676673.aspx"

ET.register_namespace("ovf", OVF_NS)
ET.register_namespace("rasd", RASD_NS)
ET.register_namespace("vssd", VSSD_NS)
ET.register_namespace("xenovf", XENOVF_NS)
ET.register_namespace("xsi", XSI_NS)


def _q(ns: str, tag: str) -> str:
    return f"{{{ns}}}{tag}"


def _ovf(tag: str) -> str:
    return _q(OVF_NS, tag)


def _sub(parent: ET.Element, tag: str, text: Optional[object] = None, **attrs: str) -> ET.Element:
    el = ET.SubElement(parent, tag, {k: v for k, v in attrs.items() if v is not None})
    if text is not None:
        el.text = str(text)
    return el


def _info(parent: ET.Element, text: str) -> None:
    _sub(parent, _ovf("Info"), text)


def _rasd_item(
    parent: ET.Element,
    *,
    instance_id: str,
    resource_type: int,
    caption: str,
    description: str = "",
    address: Optional[str] = None,
    address_on_parent: Optional[str] = None,
    allocation_units: Optional[str] = None,
    connection: Optional[str] = None,
    host_resource: Optional[str] = None,
    virtual_quantity: Optional[int] = None,
) -> ET.Element:
    # RASD children must appear in CIM schema (alphabetical) order.
    item = _sub(parent, _ovf("Item"))
    if address:
        _sub(item, _q(RASD_NS, "Address"), address)
    if address_on_parent:
        _sub(item, _q(RASD_NS, "AddressOnParent"), address_on_parent)
    if allocation_units:
        _sub(item, _q(RASD_NS, "AllocationUnits"), allocation_units)
    if connection is not None:
        _sub(item, _q(RASD_NS, "AutomaticAllocation"), "true")
    _sub(item, _q(RASD_NS, "Caption"), caption)
    if connection is not None:
        _sub(item, _q(RASD_NS, "Connection"), connection)
    if description:
        _sub(item, _q(RASD_NS, "Description"), description)
    _sub(item, _q(RASD_NS, "ElementName"), caption)
    if host_resource:
        _sub(item, _q(RASD_NS, "HostResource"), host_resource)
    _sub(item, _q(RASD_NS, "InstanceID"), instance_id)
    _sub(item, _q(RASD_NS, "ResourceType"), resource_type)
    if virtual_quantity is not None:
        _sub(item, _q(RASD_NS, "VirtualQuantity"), virtual_quantity)
    return item


def _device_item(parent: ET.Element, it: ResourceItem) -> None:
    _rasd_item(
        parent,
        instance_id=it.instance_id,
        resource_type=it.resource_type,
        caption=it.caption,
        description=it.description,
        address=it.address,
        address_on_parent=it.address_on_parent,
        connection=it.connection,
        host_resource=it.host_resource,
    )


def _virtual_system(parent: ET.Element, vs: VirtualSystem) -> None:
    el = _sub(parent, _ovf("VirtualSystem"), **{_ovf("id"): vs.system_id})
    _info(el, M.VIRTUAL_SYSTEM_INFO)
    _sub(el, _ovf("Name"), vs.name)

    if vs.operating_system is not None:
        os_el = _sub(el, _ovf("OperatingSystemSection"), **{_ovf("id"): str(vs.operating_system.os_id)})
        _info(os_el, vs.operating_system.description)
        _sub(os_el, _ovf("Description"), vs.operating_system.name)

    hw = vs.hardware
    if hw is None:
        return
    hw_el = _sub(el, _ovf("VirtualHardwareSection"), **{_ovf("id"): hw.section_id})
    _info(hw_el, M.HARDWARE_SECTION_INFO)

    if hw.settings is not None:
        s = hw.settings
        sys_el = _sub(hw_el, _ovf("System"))
        _sub(sys_el, _q(VSSD_NS, "Caption"), s.caption)
        if s.description:
            _sub(sys_el, _q(VSSD_NS, "Description"), s.description)
        _sub(sys_el, _q(VSSD_NS, "ElementName"), s.element_name)
        _sub(sys_el, _q(VSSD_NS, "InstanceID"), s.instance_id)
        _sub(sys_el, _q(VSSD_NS, "VirtualSystemIdentifier"), s.identifier)
        _sub(sys_el, _q(VSSD_NS, "VirtualSystemType"), s.virtual_system_type)

    if hw.cpus is not None:
        _rasd_item(
            hw_el,
            instance_id=f"{hw.section_id}-cpu",
            resource_type=RESOURCE_CPU,
            caption=M.CPU_CAPTION.format(count=hw.cpus),
            description=M.CPU_DESCRIPTION,
            allocation_units="count",
            virtual_quantity=hw.cpus,
        )
    if hw.memory_mb is not None:
        _rasd_item(
            hw_el,
            instance_id=f"{hw.section_id}-memory",
            resource_type=RESOURCE_MEMORY,
            caption=M.MEMORY_CAPTION.format(size=hw.memory_mb),
            description=M.MEMORY_DESCRIPTION,
            allocation_units="byte * 2^20" if hw.memory_units == "MB" else hw.memory_units,
            virtual_quantity=hw.memory_mb,
        )
    for it in hw.items:
        _device_item(hw_el, it)

    for s in vs.other_settings:
        oc = _sub(
            hw_el,
            _q(XENOVF_NS, "VirtualSystemOtherConfigurationData"),
            **{_ovf("required"): "false", "Name": s.name},
        )
        _sub(oc, _ovf("Info"), s.description or M.OTHER_SETTINGS_INFO)
        _sub(oc, _q(XENOVF_NS, "Value"), s.value)


def to_element(env: Envelope, base_dir: Optional[Path] = None) -> ET.Element:
    root = ET.Element(_ovf("Envelope"), {_ovf("version"): "1.0"})

    refs = _sub(root, _ovf("References"))
    for ref in env.files.values():
        size = ref.size
        if size is None and base_dir is not None:
            p = base_dir / ref.href
            if p.is_file():
                size = p.stat().st_size
        _sub(
            refs,
            _ovf("File"),
            **{
                _ovf("id"): ref.file_id,
                _ovf("href"): ref.href,
                _ovf("size"): str(size) if size is not None else None,
            },
        )

    if env.disks:
        ds = _sub(root, _ovf("DiskSection"))
        _info(ds, M.DISK_SECTION_INFO)
        for d in env.disks.values():
            _sub(
                ds,
                _ovf("Disk"),
                **{
                    _ovf("diskId"): d.disk_id,
                    _ovf("fileRef"): d.file_id,
                    _ovf("capacity"): str(d.capacity),
                    _ovf("populatedSize"): str(d.allocated_size),
                    _ovf("format"): VHD_FORMAT_URI,
                    _q(XENOVF_NS, "isBootable"): "true" if d.bootable else "false",
                },
            )

    if env.networks:
        ns = _sub(root, _ovf("NetworkSection"))
        _info(ns, M.NETWORK_SECTION_INFO)
        for net in env.networks.values():
            n_el = _sub(ns, _ovf("Network"), **{_ovf("name"): net.network_id})
            _sub(n_el, _ovf("Description"), net.description or net.name)

    coll = _sub(root, _ovf("VirtualSystemCollection"), **{_ovf("id"): env.name})
    _info(coll, M.VIRTUAL_SYSTEM_COLLECTION_INFO)
    _sub(coll, _ovf("Name"), env.name)

    started = [vs for vs in env.systems if vs.startup is not None]
    if started:
        st = _sub(coll, _ovf("StartupSection"))
        _info(st, M.STARTUP_SECTION_INFO)
        for vs in started:
            _sub(
                st,
                _ovf("Item"),
                **{
                    _ovf("id"): vs.system_id,
                    _ovf("order"): str(vs.startup.order),
                    _ovf("startDelay"): str(vs.startup.start_delay),
                    _ovf("stopDelay"): str(vs.startup.stop_delay),
                },
            )

    for vs in env.systems:
        _virtual_system(coll, vs)

    return root


def to_xml(env: Envelope, base_dir: Optional[Path] = None) -> bytes:
    root = to_element(env, base_dir)
    ET.indent(root)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def save_as(env: Envelope, path: Path) -> Path:
    """Write `env` to `path`; file sizes are taken from images next to it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = to_xml(env, base_dir=path.parent)
    tmp = path.with_name(path.name + ".part")
    tmp.write_bytes(data)
    tmp.replace(path)
    LOG.info("Saved OVF descriptor: %s (%d virtual system(s))", path, len(env.systems))
    return path
