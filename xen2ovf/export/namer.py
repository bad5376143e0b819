# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/export/namer.py
"""
Destination filenames for exported disks.

The canonical name is `{storage_id}.{ext}`. When that name is already on
disk, or was handed out earlier in the same run, the disk is written as
`{storage_id}_{worker_token}.{ext}` instead and the envelope's file reference
is patched to match. Concurrent exports sharing one directory use distinct
worker tokens.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Set

from ..ovf.envelope import Envelope
from .models import VdiReference

LOG = logging.getLogger(__name__)


class DiskNamer:
    def __init__(
        self,
        target_path: Path,
        image_ext: str,
        worker_token: str,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.target_path = Path(target_path)
        self.image_ext = image_ext.lstrip(".")
        self.worker_token = worker_token
        self.logger = logger or LOG
        self._claimed: Set[str] = set()

    def canonical(self, storage_id: str) -> str:
        return f"{storage_id}.{self.image_ext}"

    def _taken(self, name: str) -> bool:
        return name in self._claimed or (self.target_path / name).exists()

    def _alternative(self, storage_id: str) -> str:
        name = f"{storage_id}_{self.worker_token}.{self.image_ext}"
        n = 1
        while self._taken(name):
            name = f"{storage_id}_{self.worker_token}-{n}.{self.image_ext}"
            n += 1
        return name

    def claim(self, envelope: Envelope, ref: VdiReference) -> Path:
        """
        Reserve a destination for `ref` and keep the envelope in step with it.
        """
        name = self.canonical(ref.storage_id)
        if self._taken(name):
            old = envelope.files[ref.file_id].href
            name = self._alternative(ref.storage_id)
            envelope.rename_file(ref.file_id, name)
            self.logger.warning("Destination %s already exists, writing %s instead", old, name)
        self._claimed.add(name)
        return self.target_path / name
