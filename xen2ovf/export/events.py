# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/export/events.py
"""
Lifecycle notifications for observers (CLI, logs, tests).

Delivery is synchronous and in emission order, so events for one VM always
precede those of the next VM in a batch. Message text is not a stable
interface; step and ordering are.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List

LOG = logging.getLogger(__name__)


class TransportStep(str, Enum):
    EXPORT = "export"


@dataclass(frozen=True)
class TransportEvent:
    step: TransportStep
    message: str


EventCallback = Callable[[TransportEvent], None]


class EventReporter:
    def __init__(self) -> None:
        self._subscribers: List[EventCallback] = []

    def subscribe(self, callback: EventCallback) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, step: TransportStep, message: str) -> TransportEvent:
        event = TransportEvent(step=step, message=message)
        for cb in list(self._subscribers):
            try:
                cb(event)
            except Exception as e:
                # A broken observer must not change the export outcome.
                LOG.warning("Event subscriber %r failed: %s", cb, e)
        return event


class LoggingEventSink:
    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def __call__(self, event: TransportEvent) -> None:
        if event.message:
            self.logger.info("[%s] %s", event.step.value, event.message)


class RecordingEventSink:
    """Keeps every event; handy for reports and tests."""

    def __init__(self) -> None:
        self.events: List[TransportEvent] = []

    def __call__(self, event: TransportEvent) -> None:
        self.events.append(event)

    @property
    def messages(self) -> List[str]:
        return [e.message for e in self.events]
