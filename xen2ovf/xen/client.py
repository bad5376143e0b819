# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/xen/client.py
"""
Thin query layer over a logged-in XenAPI proxy (`session.xenapi`).

Calls raise whatever XenAPI raises (usually `XenAPI.Failure`); each caller
decides whether that failure is fatal or skippable.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

NULL_REF = "OpaqueRef:NULL"

Record = Dict[str, Any]


def is_null_ref(ref: Optional[str]) -> bool:
    return not ref or "null" in str(ref).lower()


def as_int(value: Any, default: int = 0) -> int:
    # XenAPI transports int64 fields as strings.
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class XenClient:
    def __init__(
        self,
        xenapi: Any,
        *,
        host_url: Optional[str] = None,
        session_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.xenapi = xenapi
        self.host_url = host_url
        self.session_id = session_id
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_session(cls, session: Any, host_url: str, logger: Optional[logging.Logger] = None) -> "XenClient":
        return cls(
            session.xenapi,
            host_url=host_url,
            session_id=getattr(session, "_session", None),
            logger=logger,
        )

    # ------------------------------------------------------------------
    # VM
    # ------------------------------------------------------------------
    def get_vm_by_uuid(self, uuid: str) -> str:
        return self.xenapi.VM.get_by_uuid(uuid)

    def get_vms_by_name_label(self, label: str) -> List[str]:
        return list(self.xenapi.VM.get_by_name_label(label) or [])

    def get_vm_record(self, vm_ref: str) -> Record:
        return self.xenapi.VM.get_record(vm_ref)

    def get_guest_metrics_record(self, gm_ref: str) -> Optional[Record]:
        if is_null_ref(gm_ref):
            return None
        return self.xenapi.VM_guest_metrics.get_record(gm_ref)

    # ------------------------------------------------------------------
    # networking
    # ------------------------------------------------------------------
    def get_vif_record(self, vif_ref: str) -> Record:
        return self.xenapi.VIF.get_record(vif_ref)

    def get_network_record(self, net_ref: str) -> Record:
        return self.xenapi.network.get_record(net_ref)

    def get_network_by_uuid(self, uuid: str) -> str:
        return self.xenapi.network.get_by_uuid(uuid)

    def get_master_address_on_network(self, net_ref: str) -> Optional[str]:
        """IP of the pool master's PIF on `net_ref`, if it has one."""
        pools = self.xenapi.pool.get_all()
        if not pools:
            return None
        master = self.xenapi.pool.get_master(pools[0])
        for pif_ref in self.xenapi.network.get_PIFs(net_ref) or []:
            pif = self.xenapi.PIF.get_record(pif_ref)
            if pif.get("host") == master and pif.get("IP"):
                return pif["IP"]
        return None

    # ------------------------------------------------------------------
    # storage
    # ------------------------------------------------------------------
    def get_vbd_record(self, vbd_ref: str) -> Record:
        return self.xenapi.VBD.get_record(vbd_ref)

    def get_vdi_record(self, vdi_ref: str) -> Record:
        return self.xenapi.VDI.get_record(vdi_ref)

    # ------------------------------------------------------------------
    # GPU / PVS
    # ------------------------------------------------------------------
    def get_vgpu_record(self, vgpu_ref: str) -> Record:
        return self.xenapi.VGPU.get_record(vgpu_ref)

    def get_gpu_group_record(self, ref: str) -> Record:
        return self.xenapi.GPU_group.get_record(ref)

    def get_vgpu_type_record(self, ref: str) -> Record:
        return self.xenapi.VGPU_type.get_record(ref)

    def get_pvs_proxy_records(self) -> Dict[str, Record]:
        return dict(self.xenapi.PVS_proxy.get_all_records() or {})

    def get_pvs_site_record(self, ref: str) -> Record:
        return self.xenapi.PVS_site.get_record(ref)
