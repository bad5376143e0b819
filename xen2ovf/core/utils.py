# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/core/utils.py
from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Optional

KB = 1024
MB = KB * 1024


class U:
    @staticmethod
    def ensure_dir(p: Path) -> None:
        p.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def uniq6() -> str:
        return os.urandom(3).hex()

    @staticmethod
    def json_dump(obj: Any) -> str:
        try:
            return json.dumps(obj, indent=2, sort_keys=True, default=str)
        except Exception:
            return repr(obj)

    @staticmethod
    def human_bytes(n: Optional[int]) -> str:
        if n is None:
            return "unknown"
        x = float(n)
        for unit in ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]:
            if x < 1024 or unit == "PiB":
                return f"{x:.2f} {unit}" if unit != "B" else f"{int(x)} {unit}"
            x /= 1024
        return f"{n} B"

    @staticmethod
    def safe_name(name: Optional[str], default: str = "export") -> str:
        """
        Sanitize a name for use in filenames.

        >>> U.safe_name("My VM (test)")
        'My_VM_test_'
        """
        return re.sub(r"[^A-Za-z0-9_.-]+", "_", (name or default).strip()) or default
