# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""XenAPI access for xen2ovf."""

from __future__ import annotations

from .client import NULL_REF, XenClient, is_null_ref

__all__ = ["NULL_REF", "XenClient", "is_null_ref"]
