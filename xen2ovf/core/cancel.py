# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/core/cancel.py
"""
Cooperative cancellation shared by the orchestrator and the disk transport.

Cancellation is checked between steps (and between copied chunks); it never
interrupts a blocking call.
"""
from __future__ import annotations

from threading import Event
from typing import Callable, List

from .exceptions import cancelled


class CancellationToken:
    def __init__(self) -> None:
        self._event = Event()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        for cb in list(self._callbacks):
            cb()

    def remove_callback(self, cb: Callable[[], None]) -> None:
        """Forget a callback registered with on_cancel; unknown callbacks are ignored."""
        try:
            self._callbacks.remove(cb)
        except ValueError:
            pass

    def on_cancel(self, cb: Callable[[], None]) -> None:
        """Register a callback; runs immediately if already cancelled."""
        self._callbacks.append(cb)
        if self._event.is_set():
            cb()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise cancelled()
