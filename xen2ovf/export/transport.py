# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/export/transport.py
"""
Disk transport: stream VDIs from the pool over HTTP(S) into fixed VHDs.

Each disk is pulled with `GET /export_raw_vdi?session_id=..&vdi=..&format=raw`
and written into a VHD created at exactly the remote byte length. One
requests.Session serves every disk of an export run; disks are copied one at
a time.

Cancellation is cooperative: the token is checked before each disk and each
chunk, and cancelling closes the in-flight response so a blocked read
returns. A cancelled copy always surfaces as ExportCancelled.
"""
from __future__ import annotations

import hashlib
import ipaddress
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import urlsplit

import requests
import requests.adapters
import urllib3

from ..core.cancel import CancellationToken
from ..core.exceptions import ExportCancelled, cancelled, disk_transfer_failed, wrap_xenapi
from ..core.utils import U
from ..ovf import messages as M
from ..ovf.envelope import Envelope
from ..xen.client import XenClient, as_int
from . import vhd
from .events import EventReporter, TransportStep
from .models import ExportOptions, TransferNetwork, VdiReference
from .namer import DiskNamer
from .progress import ProgressReporter, create_progress_reporter


class VerificationError(IOError):
    pass


class RemoteDiskStream:
    """An open export_raw_vdi response."""

    def __init__(self, response: Any, length: int, label: str, chunk_bytes: int) -> None:
        self.response = response
        self.length = length
        self.label = label
        self.chunk_bytes = chunk_bytes

    def iter_chunks(self) -> Iterator[bytes]:
        for chunk in self.response.iter_content(chunk_size=self.chunk_bytes):
            if chunk:
                yield chunk

    def close(self) -> None:
        self.response.close()


class HTTPDiskTransport:
    def __init__(
        self,
        logger: logging.Logger,
        client: XenClient,
        options: ExportOptions,
        token: CancellationToken,
        reporter: EventReporter,
        *,
        worker_token: Optional[str] = None,
        http_client: Optional[Any] = None,  # For testing/mocking
        progress: Optional[ProgressReporter] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.logger = logger
        self.client = client
        self.options = options
        self.token = token
        self.reporter = reporter
        self.worker_token = worker_token or U.uniq6()
        self.timeout = timeout

        self._http_client = http_client or requests
        self._session: Optional[Any] = None
        self._progress = progress
        self._active: Optional[RemoteDiskStream] = None
        self._digests: Dict[str, str] = {}
        self._namer: Optional[DiskNamer] = None
        self.base_url: Optional[str] = None

        self._disable_tls_warnings()
        self.token.on_cancel(self._abort_active)

    # ------------------------------------------------------------------
    # session / network
    # ------------------------------------------------------------------
    def _disable_tls_warnings(self) -> None:
        if self.options.insecure:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def session(self) -> Any:
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def _create_session(self) -> Any:
        session = self._http_client.Session()
        session.verify = not self.options.insecure
        adapter = self._http_client.adapters.HTTPAdapter(pool_connections=1, pool_maxsize=1, max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def configure_network(self, network: TransferNetwork) -> str:
        """
        Pick the endpoint disks are pulled from. Returns the base URL.
        """
        if not self.client.host_url:
            raise ValueError("XenClient has no host URL")
        parts = urlsplit(self.client.host_url)
        scheme = parts.scheme or "https"
        address: Optional[str] = None

        if network.static:
            address = network.ip
            self.logger.info(
                "Transfer network: static %s (netmask=%s, gateway=%s)",
                network.ip,
                network.netmask or "-",
                network.gateway or "-",
            )
        elif network.network_uuid:
            try:
                net_ref = self.client.get_network_by_uuid(network.network_uuid)
                address = self.client.get_master_address_on_network(net_ref)
            except Exception as e:
                raise wrap_xenapi(
                    f"Cannot resolve transfer network {network.network_uuid}", e, network=network.network_uuid
                ) from e
            if not address:
                self.logger.warning(
                    "Pool master has no address on network %s; using %s",
                    network.network_uuid,
                    parts.netloc,
                )

        if address:
            try:
                if ipaddress.ip_address(address).version == 6:
                    address = f"[{address}]"
            except ValueError:
                pass
            self.base_url = f"{scheme}://{address}"
        else:
            self.base_url = f"{scheme}://{parts.netloc}"
        self.logger.debug("Disk transfer endpoint: %s", self.base_url)
        return self.base_url

    # ------------------------------------------------------------------
    # transport operations
    # ------------------------------------------------------------------
    def _remote_length(self, ref: VdiReference, response: Any) -> int:
        header = response.headers.get("content-length") if response.headers else None
        if header is not None:
            return int(header)
        # Chunked responses carry no length; the VDI record knows.
        return as_int(self.client.get_vdi_record(ref.vdi_ref).get("virtual_size"))

    def connect(self, ref: VdiReference) -> RemoteDiskStream:
        self.token.raise_if_cancelled()
        if self.base_url is None:
            self.configure_network(self.options.network)
        params = {
            "session_id": self.client.session_id,
            "vdi": ref.vdi_ref,
            "format": "raw",
        }
        response = self.session.get(
            f"{self.base_url}/export_raw_vdi",
            params=params,
            stream=True,
            timeout=self.timeout,
        )
        self._active = RemoteDiskStream(response, 0, ref.storage_id, self.options.chunk_bytes)
        response.raise_for_status()
        self._active.length = self._remote_length(ref, response)
        self.logger.debug("Connected to VDI %s (%s)", ref.storage_id, U.human_bytes(self._active.length))
        self.token.raise_if_cancelled()
        return self._active

    def copy(self, source: RemoteDiskStream, destination: vhd.VhdContentStream, label: str, verify: bool) -> int:
        """
        Stream `source` into `destination`. Returns bytes copied.
        With `verify`, the SHA-256 of the remote bytes is kept for verify().
        """
        digest = hashlib.sha256() if verify else None
        progress = self._progress or create_progress_reporter(self.options.show_progress, self.logger)
        copied = 0
        progress.start(f"Copying {label}", source.length)
        try:
            for chunk in source.iter_chunks():
                self.token.raise_if_cancelled()
                destination.write(chunk)
                if digest is not None:
                    digest.update(chunk)
                copied += len(chunk)
                progress.update(len(chunk))
        finally:
            progress.finish()

        self.token.raise_if_cancelled()
        if copied != source.length:
            raise IOError(f"Short read for {label}: got {copied} of {source.length} bytes")
        if digest is not None:
            self._digests[label] = digest.hexdigest()
        return copied

    def verify(self, content: vhd.VhdContentStream, label: str) -> None:
        expected = self._digests.get(label)
        if expected is None:
            raise VerificationError(f"No reference digest recorded for {label}")
        digest = hashlib.sha256()
        while True:
            self.token.raise_if_cancelled()
            chunk = content.read(self.options.chunk_bytes)
            if not chunk:
                break
            digest.update(chunk)
        if digest.hexdigest() != expected:
            raise VerificationError(f"Content of {label} does not match the source disk")
        self.logger.info("Verified %s", label)

    def disconnect(self) -> None:
        active, self._active = self._active, None
        if active is not None:
            active.close()

    def _abort_active(self) -> None:
        active = self._active
        if active is None:
            return
        self.logger.debug("Cancelling transfer of %s", active.label)
        try:
            active.close()
        except Exception as e:
            self.logger.debug("Closing %s after cancel failed: %s", active.label, e)

    def close(self) -> None:
        self.token.remove_callback(self._abort_active)
        self.disconnect()
        if self._session is not None:
            self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # per-VM copy
    # ------------------------------------------------------------------
    def _namer_for(self, target_path: Path) -> DiskNamer:
        if self._namer is None or self._namer.target_path != Path(target_path):
            self._namer = DiskNamer(target_path, self.options.image_ext, self.worker_token, logger=self.logger)
        return self._namer

    def _remove_partial(self, path: Path) -> None:
        try:
            path.unlink()
            self.logger.debug("Removed partial image %s", path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning("Could not remove partial image %s: %s", path, e)

    def _copy_one(self, envelope: Envelope, ref: VdiReference, target_path: Path) -> Path:
        dest = self._namer_for(target_path).claim(envelope, ref)
        label = dest.name
        verify = self.options.verify_disks
        created = False
        done = False

        self.reporter.emit(TransportStep.EXPORT, M.FILES_TRANSPORT_SETUP.format(file=label))
        try:
            source = self.connect(ref)
            with vhd.create_fixed(dest, source.length) as content:
                created = True
                self.copy(source, content, label, verify)
            if verify:
                with vhd.open_existing(dest, "rb") as content:
                    self.verify(content, label)
            done = True
        except ExportCancelled:
            raise
        except Exception as e:
            if self.token.is_cancelled:
                raise cancelled() from e
            raise disk_transfer_failed(label, e, vdi=ref.storage_id) from e
        finally:
            if created and not done:
                self._remove_partial(dest)
            self.reporter.emit(TransportStep.EXPORT, M.FILES_TRANSPORT_CLEANUP.format(file=label))
            self.disconnect()
        self.logger.info("Exported disk %s -> %s", ref.storage_id, dest)
        return dest

    def copy_disks(self, envelope: Envelope, vdi_refs: List[VdiReference], target_path: Path) -> List[Path]:
        """
        Copy every queued disk of one VM, in order. `vdi_refs` is always
        emptied, even when a copy fails.
        """
        target_path = Path(target_path)
        U.ensure_dir(target_path)
        written: List[Path] = []
        try:
            for ref in vdi_refs:
                self.token.raise_if_cancelled()
                written.append(self._copy_one(envelope, ref, target_path))
        finally:
            vdi_refs.clear()
        return written
