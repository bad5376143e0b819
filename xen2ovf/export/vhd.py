# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/export/vhd.py
"""
Fixed-size VHD images.

A fixed VHD is the raw disk content followed by a 512-byte footer
(Microsoft Virtual Hard Disk Image Format Specification, Appendix A).
Capacity is set at creation and never grows; writes past it fail.
"""
from __future__ import annotations

import calendar
import os
import struct
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

FOOTER_SIZE = 512
SECTOR = 512

COOKIE = b"conectix"
FEATURES = 0x00000002
FORMAT_VERSION = 0x00010000
FIXED_DATA_OFFSET = 0xFFFFFFFFFFFFFFFF
DISK_TYPE_FIXED = 2
CREATOR_APP = b"x2ov"
CREATOR_VERSION = 0x00010000
CREATOR_HOST_OS = b"Wi2k"

# 2000-01-01T00:00:00Z
VHD_EPOCH = calendar.timegm((2000, 1, 1, 0, 0, 0, 0, 0, 0))

_FOOTER = struct.Struct(">8sIIQI4sI4sQQHBBII16sB427x")


class VhdError(IOError):
    pass


def geometry(size: int) -> Tuple[int, int, int]:
    """CHS geometry for `size` bytes: (cylinders, heads, sectors per track)."""
    total = size // SECTOR
    total = min(total, 65535 * 16 * 255)

    if total >= 65535 * 16 * 63:
        spt, heads = 255, 16
        cth = total // spt
    else:
        spt = 17
        cth = total // spt
        heads = max(4, (cth + 1023) // 1024)
        if cth >= heads * 1024 or heads > 16:
            spt, heads = 31, 16
            cth = total // spt
        if cth >= heads * 1024:
            spt, heads = 63, 16
            cth = total // spt
    return cth // heads, heads, spt


def _checksum(raw: bytes) -> int:
    return (~sum(raw)) & 0xFFFFFFFF


@dataclass(frozen=True)
class VhdFooter:
    current_size: int
    original_size: int
    disk_type: int = DISK_TYPE_FIXED
    timestamp: int = 0
    unique_id: bytes = b"\0" * 16

    def pack(self) -> bytes:
        c, h, s = geometry(self.current_size)
        fields = [
            COOKIE,
            FEATURES,
            FORMAT_VERSION,
            FIXED_DATA_OFFSET,
            self.timestamp,
            CREATOR_APP,
            CREATOR_VERSION,
            CREATOR_HOST_OS,
            self.original_size,
            self.current_size,
            c,
            h,
            s,
            self.disk_type,
            0,
            self.unique_id,
            0,
        ]
        unsummed = _FOOTER.pack(*fields)
        fields[14] = _checksum(unsummed)
        return _FOOTER.pack(*fields)

    @classmethod
    def unpack(cls, raw: bytes) -> "VhdFooter":
        if len(raw) != FOOTER_SIZE:
            raise VhdError(f"VHD footer must be {FOOTER_SIZE} bytes, got {len(raw)}")
        f = list(_FOOTER.unpack(raw))
        if f[0] != COOKIE:
            raise VhdError("Not a VHD image (bad footer cookie)")
        stored = f[14]
        f[14] = 0
        if _checksum(_FOOTER.pack(*f)) != stored:
            raise VhdError("VHD footer checksum mismatch")
        return cls(
            current_size=f[9],
            original_size=f[8],
            disk_type=f[13],
            timestamp=f[4],
            unique_id=f[15],
        )


class VhdContentStream:
    """
    File-like view of the content area of a fixed VHD, bounded by capacity.
    """

    def __init__(self, fh: BinaryIO, capacity: int, path: Path, writable: bool):
        self._fh = fh
        self.capacity = capacity
        self.path = path
        self.writable = writable
        self._pos = 0

    @property
    def closed(self) -> bool:
        return self._fh.closed

    def __len__(self) -> int:
        return self.capacity

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        if whence == os.SEEK_SET:
            pos = offset
        elif whence == os.SEEK_CUR:
            pos = self._pos + offset
        elif whence == os.SEEK_END:
            pos = self.capacity + offset
        else:
            raise ValueError(f"Invalid whence: {whence}")
        if pos < 0 or pos > self.capacity:
            raise VhdError(f"Seek outside content area: {pos}")
        self._pos = pos
        return pos

    def read(self, n: int = -1) -> bytes:
        remaining = self.capacity - self._pos
        if n is None or n < 0 or n > remaining:
            n = remaining
        if n <= 0:
            return b""
        self._fh.seek(self._pos)
        data = self._fh.read(n)
        self._pos += len(data)
        return data

    def write(self, data: bytes) -> int:
        if not self.writable:
            raise VhdError(f"{self.path} is open read-only")
        if self._pos + len(data) > self.capacity:
            raise VhdError(
                f"Write of {len(data)} bytes at offset {self._pos} exceeds capacity {self.capacity} of {self.path}"
            )
        self._fh.seek(self._pos)
        self._fh.write(data)
        self._pos += len(data)
        return len(data)

    def flush(self) -> None:
        self._fh.flush()

    def close(self) -> None:
        if self._fh.closed:
            return
        if self.writable:
            self._fh.flush()
            os.fsync(self._fh.fileno())
        self._fh.close()

    def __enter__(self) -> "VhdContentStream":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def create_fixed(path: Path, size: int, *, timestamp: Optional[int] = None) -> VhdContentStream:
    """
    Create a new fixed VHD at `path` holding exactly `size` content bytes.
    Fails if `path` already exists.
    """
    if size < 0:
        raise VhdError(f"Invalid VHD size: {size}")
    path = Path(path)
    ts = timestamp if timestamp is not None else max(0, int(time.time()) - VHD_EPOCH)
    footer = VhdFooter(
        current_size=size,
        original_size=size,
        timestamp=ts,
        unique_id=uuid.uuid4().bytes,
    )
    fh = open(path, "x+b")
    try:
        fh.truncate(size)
        fh.seek(size)
        fh.write(footer.pack())
    except Exception:
        fh.close()
        path.unlink(missing_ok=True)
        raise
    return VhdContentStream(fh, size, path, writable=True)


def read_footer(path: Path) -> VhdFooter:
    path = Path(path)
    file_size = path.stat().st_size
    if file_size < FOOTER_SIZE:
        raise VhdError(f"{path} is too small to be a VHD")
    with open(path, "rb") as fh:
        fh.seek(file_size - FOOTER_SIZE)
        footer = VhdFooter.unpack(fh.read(FOOTER_SIZE))
    if footer.disk_type != DISK_TYPE_FIXED:
        raise VhdError(f"{path} is not a fixed VHD (type {footer.disk_type})")
    if footer.current_size != file_size - FOOTER_SIZE:
        raise VhdError(f"{path}: footer size {footer.current_size} does not match file size {file_size}")
    return footer


def open_existing(path: Path, mode: str = "rb") -> VhdContentStream:
    """Open the content of an existing fixed VHD; mode is "rb" or "r+b"."""
    if mode not in ("rb", "r+b"):
        raise ValueError(f"Unsupported mode: {mode}")
    path = Path(path)
    footer = read_footer(path)
    return VhdContentStream(open(path, mode), footer.current_size, path, writable=(mode == "r+b"))
