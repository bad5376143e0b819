# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/ovf/os_table.py
"""
Guest OS name -> CIM_OperatingSystem.OSType lookup.

Guests report free-form names ("Microsoft Windows Server 2012 R2 Standard|C:\\Windows|...",
"CentOS Linux release 7.9.2009 (Core)"); matching is case-insensitive on the
longest known prefix, with a few keyword fallbacks.
"""
from __future__ import annotations

from typing import Optional, Tuple

OS_UNKNOWN = 0
OS_OTHER = 1
OS_LINUX = 36

# Ordered longest-first at import time so "windows server 2008 r2" wins over
# "windows server 2008".
_PREFIXES: Tuple[Tuple[str, int], ...] = tuple(
    sorted(
        (
            ("microsoft windows 2000", 58),
            ("microsoft windows xp", 67),
            ("microsoft windows server 2003", 69),
            ("microsoft windows vista", 73),
            ("microsoft windows server 2008", 76),
            ("microsoft windows server 2008 r2", 103),
            ("microsoft windows 7", 105),
            ("microsoft windows server 2011", 111),
            ("microsoft windows server 2012", 112),
            ("microsoft windows 8", 113),
            ("microsoft windows server 2012 r2", 115),
            ("microsoft windows 10", 116),
            ("microsoft windows server 2016", 117),
            ("microsoft windows server 2019", 118),
            ("red hat enterprise linux", 79),
            ("suse linux enterprise server", 82),
            ("novell linux desktop", 84),
            ("ubuntu", 93),
            ("debian", 95),
            ("centos", 106),
            ("oracle linux", 108),
            ("freebsd", 42),
            ("solaris", 29),
        ),
        key=lambda kv: len(kv[0]),
        reverse=True,
    )
)

_KEYWORDS: Tuple[Tuple[str, int], ...] = (
    ("linux", OS_LINUX),
)


def operating_system_id(name: Optional[str]) -> Optional[int]:
    """
    Return the CIM OSType for a guest-reported OS name, or None when unknown.
    """
    if not name:
        return None
    n = " ".join(name.split("|", 1)[0].lower().split())
    for prefix, osid in _PREFIXES:
        if n.startswith(prefix):
            return osid
    for kw, osid in _KEYWORDS:
        if kw in n:
            return osid
    return None


def operating_system_id_or_other(name: Optional[str]) -> int:
    osid = operating_system_id(name)
    return OS_OTHER if osid is None else osid
