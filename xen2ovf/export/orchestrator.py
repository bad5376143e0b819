# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/export/orchestrator.py
"""
Batch export: map each VM in input order, copy its disks, merge the
fragments into one package envelope and optionally save `<package>.ovf`.

The batch is all-or-nothing from the caller's point of view: the first
failure propagates. Disks already copied for earlier VMs are left in place.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..core.cancel import CancellationToken
from ..core.logger import Log
from ..core.utils import U
from ..ovf import messages as M
from ..ovf.envelope import Envelope, merge
from ..ovf.writer import save_as
from ..xen.client import XenClient
from .events import EventReporter, TransportStep
from .mapper import VMDescriptorMapper
from .models import ExportOptions
from .transport import HTTPDiskTransport

TransportFactory = Callable[..., HTTPDiskTransport]


class Exporter:
    def __init__(
        self,
        logger: logging.Logger,
        client: XenClient,
        options: Optional[ExportOptions] = None,
        *,
        reporter: Optional[EventReporter] = None,
        token: Optional[CancellationToken] = None,
        transport_factory: Optional[TransportFactory] = None,
        worker_token: Optional[str] = None,
    ) -> None:
        self.logger = logger
        self.client = client
        self.options = options or ExportOptions()
        self.reporter = reporter or EventReporter()
        self.token = token or CancellationToken()
        self.transport_factory = transport_factory or HTTPDiskTransport
        self.worker_token = worker_token or U.uniq6()
        self.mapper = VMDescriptorMapper(logger, client, self.reporter, self.options, self.token)

    def cancel(self) -> None:
        self.logger.warning("Cancellation requested")
        self.token.cancel()

    def _open_transport(self) -> HTTPDiskTransport:
        transport = self.transport_factory(
            self.logger,
            self.client,
            self.options,
            self.token,
            self.reporter,
            worker_token=self.worker_token,
        )
        transport.configure_network(self.options.network)
        return transport

    def process(self, target_path: Path, package_name: str, vm_ids: Sequence[str]) -> Envelope:
        """
        Export `vm_ids` into `target_path` as package `package_name`.
        """
        target_path = Path(target_path)
        U.ensure_dir(target_path)
        Log.step(self.logger, f"Exporting {len(vm_ids)} VM(s) as {package_name}", target=str(target_path))

        fragments: List[Envelope] = []
        transport: Optional[HTTPDiskTransport] = None
        try:
            if not self.options.metadata_only:
                transport = self._open_transport()
            for vm_id in vm_ids:
                mapped = self.mapper.map_vm(vm_id, package_name)
                if transport is not None:
                    transport.copy_disks(mapped.envelope, mapped.vdi_refs, target_path)
                fragments.append(mapped.envelope)
        finally:
            if transport is not None:
                transport.close()

        envelope = merge(fragments, package_name)
        if self.options.auto_save:
            save_as(envelope, target_path / f"{package_name}.ovf")

        self.reporter.emit(TransportStep.EXPORT, M.COMPLETED_EXPORT)
        Log.ok(self.logger, f"Exported {len(fragments)} VM(s) to {target_path}")
        return envelope
