# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/export/mapper.py
"""
VM descriptor mapping: walk one halted/suspended VM's resource graph and
build its envelope fragment plus the ordered list of disks to transport.

Order matters: the virtual system and hardware section are created first
because every later record is keyed by their ids.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..core.cancel import CancellationToken
from ..core.exceptions import (
    ExportCancelled,
    InvalidVMStateError,
    VMNotFoundError,
    cancelled,
    export_failed,
    invalid_vm_state,
    vm_not_found,
)
from ..core.utils import MB
from ..ovf import messages as M
from ..ovf import os_table
from ..ovf.envelope import Envelope, new_id
from ..xen.client import Record, XenClient, as_float, as_int, is_null_ref
from .events import EventReporter, TransportStep
from .models import ExportOptions, MappedVM, VdiReference

EXPORTABLE_POWER_STATES = ("Halted", "Suspended")
VBD_TYPE_CD = "CD"


def _join_map(m: Optional[Dict[str, Any]]) -> str:
    return ";".join(f"{k}={v}" for k, v in (m or {}).items())


def virtualization_type(boot_policy: Optional[str], domarch: Optional[str], expected_policy: str) -> str:
    """
    | policy matches | domarch set | result              |
    |----------------|-------------|---------------------|
    | yes            | yes         | {arch}-3.0-unknown  |
    | yes            | no          | hvm-3.0-unknown     |
    | no             | yes         | xen-3.0-{arch}      |
    | no             | no          | xen-3.0-unknown     |
    """
    if boot_policy and boot_policy == expected_policy:
        return f"{domarch}-3.0-unknown" if domarch else "hvm-3.0-unknown"
    return f"xen-3.0-{domarch}" if domarch else "xen-3.0-unknown"


class VMDescriptorMapper:
    def __init__(
        self,
        logger: logging.Logger,
        client: XenClient,
        reporter: EventReporter,
        options: ExportOptions,
        token: CancellationToken,
    ) -> None:
        self.logger = logger
        self.client = client
        self.reporter = reporter
        self.options = options
        self.token = token

    # ------------------------------------------------------------------
    # resolution
    # ------------------------------------------------------------------
    def resolve(self, vm_identifier: str) -> Tuple[str, List[str]]:
        """uuid first, then name label. Returns (vm_ref, warnings)."""
        warnings: List[str] = []
        try:
            return self.client.get_vm_by_uuid(vm_identifier), warnings
        except Exception as e:
            self.logger.warning("VM not found as uuid: %s, trying as name-label (%s)", vm_identifier, e)

        try:
            refs = self.client.get_vms_by_name_label(vm_identifier)
        except Exception as e:
            self.logger.error("Failed to find VM %s", vm_identifier)
            raise vm_not_found(vm_identifier, e) from e
        if not refs:
            self.logger.error("Failed to find VM %s", vm_identifier)
            raise vm_not_found(vm_identifier)

        self.logger.debug("%d VM(s) found by label %s", len(refs), vm_identifier)
        if len(refs) > 1:
            msg = f"{len(refs)} VMs are named {vm_identifier}; only exporting the first"
            self.logger.warning(msg)
            warnings.append(msg)
        return refs[0], warnings

    def _check_power_state(self, vm_ref: str, vm: Record) -> None:
        state = vm.get("power_state")
        if state in EXPORTABLE_POWER_STATES:
            return
        name = vm.get("name_label") or vm_ref
        self.reporter.emit(TransportStep.EXPORT, M.ERROR_VM_NOT_HALTED.format(vm=name))
        self.logger.info("VM %s (%s) is neither halted nor suspended", name, vm_ref)
        raise invalid_vm_state(name, str(state))

    # ------------------------------------------------------------------
    # mapping steps
    # ------------------------------------------------------------------
    def _map_operating_system(self, env: Envelope, vs_id: str, vm: Record) -> None:
        metrics = self.client.get_guest_metrics_record(vm.get("guest_metrics"))
        if not metrics:
            return
        os_version = metrics.get("os_version") or {}
        for key, value in os_version.items():
            if key.lower() != "name":
                continue
            os_id = os_table.operating_system_id_or_other(value)
            description = M.OPERATING_SYSTEM_INFO
            if "major" in os_version and "minor" in os_version:
                description = M.OPERATING_SYSTEM_VERSION.format(major=os_version["major"], minor=os_version["minor"])
            env.update_operating_system_section(vs_id, str(value).split("|")[0], description, os_id)
            return

    def _map_networks(self, env: Envelope, vs_id: str, vm: Record) -> None:
        for vif_ref in vm.get("VIFs") or []:
            vif = self.client.get_vif_record(vif_ref)
            net = self.client.get_network_record(vif["network"])
            env.add_network(vs_id, net["uuid"], net.get("name_label", ""), net.get("name_description", ""), vif.get("MAC", ""))

    def _map_disks(self, env: Envelope, vs_id: str, vm: Record) -> List[VdiReference]:
        refs: List[VdiReference] = []
        for vbd_ref in vm.get("VBDs") or []:
            self.token.raise_if_cancelled()
            try:
                vbd = self.client.get_vbd_record(vbd_ref)
                if vbd.get("type") == VBD_TYPE_CD:
                    rasd_id = env.add_cdrom(vs_id, vbd.get("uuid") or new_id(), M.CDROM_CAPTION, M.CDROM_DESCRIPTION)
                    env.set_target_device(vs_id, rasd_id, vbd.get("userdevice"))
                    continue

                vdi_ref = vbd.get("VDI")
                if is_null_ref(vdi_ref):
                    self.logger.debug("VBD %s has no VDI, skipped", vbd_ref)
                    continue
                vdi = self.client.get_vdi_record(vdi_ref)
                index = len(refs)
                caption = vdi.get("name_label") or f"{M.DISK_CAPTION} {index}"
                disk = env.add_disk(
                    vs_id,
                    new_id(),
                    f"{vdi['uuid']}.{self.options.image_ext}",
                    bool(vbd.get("bootable")),
                    caption,
                    vdi.get("name_description", ""),
                    as_int(vdi.get("physical_utilisation")),
                    as_int(vdi.get("virtual_size")),
                )
                env.set_target_device(vs_id, disk.disk_id, vbd.get("userdevice"))
                refs.append(VdiReference(vdi_ref=vdi_ref, storage_id=vdi["uuid"], file_id=disk.file_id, index=index))
            except ExportCancelled:
                raise
            except Exception as e:
                self.logger.info("VBD %s skipped: %s", vbd_ref, e)
        return refs

    def _map_platform_settings(self, env: Envelope, vs_id: str, vm: Record) -> None:
        def add(name: str, value: Any, description: str = M.OTHER_SETTING_GENERIC) -> None:
            env.add_other_system_setting(vs_id, name, str(value), description)

        if vm.get("HVM_boot_params"):
            add("HVM_boot_params", _join_map(vm["HVM_boot_params"]), M.OTHER_SETTING_BOOT_PARAMS)
        if vm.get("HVM_boot_policy"):
            add("HVM_boot_policy", vm["HVM_boot_policy"], M.OTHER_SETTING_BOOT_POLICY)
        shadow = as_float(vm.get("HVM_shadow_multiplier"), 1.0)
        if shadow != 1.0:
            add("HVM_shadow_multiplier", f"{shadow:g}", M.OTHER_SETTING_SHADOW)
        if vm.get("platform"):
            add("platform", _join_map(vm["platform"]), M.OTHER_SETTING_PLATFORM)
        if vm.get("NVRAM"):
            add("NVRAM", _join_map(vm["NVRAM"]), M.OTHER_SETTING_NVRAM)
        for key in ("PV_args", "PV_bootloader", "PV_bootloader_args", "PV_kernel", "PV_legacy_args", "PV_ramdisk"):
            if vm.get(key):
                add(key, vm[key])
        hpv = as_int(vm.get("hardware_platform_version"), -1)
        if hpv >= 0:
            add("hardware_platform_version", hpv)
        if vm.get("recommendations"):
            add("recommendations", vm["recommendations"])
        if vm.get("has_vendor_device"):
            add("VM_has_vendor_device", True)

        for vgpu_ref in vm.get("VGPUs") or []:
            value = self._vgpu_setting(vgpu_ref)
            if value:
                env.add_other_system_setting(vs_id, "vgpu", value, M.OTHER_SETTING_VGPU, multiple=True)

        site = self._pvs_site_uuid(vm)
        if site:
            env.add_other_system_setting(vs_id, "pvssite", f"PVS_SITE={{uuid={site}}};", M.OTHER_SETTING_PVS_SITE)

    def _vgpu_setting(self, vgpu_ref: str) -> Optional[str]:
        try:
            vgpu = self.client.get_vgpu_record(vgpu_ref)
            group = self.client.get_gpu_group_record(vgpu["GPU_group"])
            vtype = self.client.get_vgpu_type_record(vgpu["type"])
        except Exception as e:
            self.logger.debug("VGPU %s omitted: %s", vgpu_ref, e)
            return None
        return (
            f"GPU_types={{{';'.join(group.get('GPU_types') or [])}}};"
            f"VGPU_type_vendor_name={vtype.get('vendor_name') or ''};"
            f"VGPU_type_model_name={vtype.get('model_name') or ''};"
        )

    def _pvs_site_uuid(self, vm: Record) -> Optional[str]:
        try:
            proxies = self.client.get_pvs_proxy_records()
        except Exception as e:
            self.logger.debug("PVS proxies unavailable: %s", e)
            return None
        for proxy in proxies.values():
            if is_null_ref(proxy.get("VIF")):
                continue
            try:
                vif = self.client.get_vif_record(proxy["VIF"])
                owner = self.client.get_vm_record(vif["VM"])
            except Exception as e:
                self.logger.debug("PVS proxy hop failed: %s", e)
                continue
            if owner.get("uuid") != vm.get("uuid"):
                continue
            # First proxy owned by this VM decides, even when its site is unreadable.
            try:
                return self.client.get_pvs_site_record(proxy["site"]).get("uuid") or None
            except Exception as e:
                self.logger.debug("PVS site lookup failed: %s", e)
                return None
        return None

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------
    def _map(self, vm_identifier: str, package_name: str) -> MappedVM:
        self.token.raise_if_cancelled()
        vm_ref, warnings = self.resolve(vm_identifier)
        vm = self.client.get_vm_record(vm_ref)
        self._check_power_state(vm_ref, vm)

        name = vm.get("name_label") or vm_identifier
        env = Envelope(name=package_name)
        vs_id = env.add_virtual_system(name)
        vhs_id = env.add_virtual_hardware_section(vs_id)

        self._map_operating_system(env, vs_id, vm)
        env.add_virtual_system_setting_data(
            vs_id,
            vhs_id,
            name,
            M.VSSD_CAPTION,
            vm.get("name_description", ""),
            new_id(),
            virtualization_type(vm.get("HVM_boot_policy"), vm.get("domarch"), self.options.boot_policy),
        )
        env.set_cpus(vs_id, as_int(vm.get("VCPUs_max")))
        env.set_memory(vs_id, as_int(vm.get("memory_dynamic_max")) // MB, "MB")
        self._map_networks(env, vs_id, vm)
        env.add_startup_section(vs_id, as_int(vm.get("order")), as_int(vm.get("start_delay")), as_int(vm.get("shutdown_delay")))
        refs = self._map_disks(env, vs_id, vm)
        self._map_platform_settings(env, vs_id, vm)
        env.finalize()

        self.logger.info("Mapped VM %s: %d disk(s) to transfer", name, len(refs))
        return MappedVM(vm_ref=vm_ref, name=name, envelope=env, vdi_refs=refs, warnings=warnings)

    def map_vm(self, vm_identifier: str, package_name: str) -> MappedVM:
        try:
            return self._map(vm_identifier, package_name)
        except (ExportCancelled, VMNotFoundError, InvalidVMStateError):
            raise
        except Exception as e:
            if self.token.is_cancelled:
                raise cancelled() from e
            self.logger.error("Export failed for VM %s: %s", vm_identifier, e)
            raise export_failed(vm_identifier, e) from e
