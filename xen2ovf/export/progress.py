# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/export/progress.py
"""
Byte-level progress for disk copies.

- RichProgressReporter: animated bar (TTY only)
- LoggingProgressReporter: periodic log lines (works everywhere)
- NoopProgressReporter: silent
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from ..core.logger import is_tty
from ..core.utils import U


class ProgressReporter(ABC):
    @abstractmethod
    def start(self, description: str, total: Optional[int] = None) -> None:
        ...

    @abstractmethod
    def update(self, delta: int) -> None:
        ...

    @abstractmethod
    def finish(self) -> None:
        ...


class RichProgressReporter(ProgressReporter):
    def __init__(self, console: Console, refresh_hz: float = 10.0):
        self.console = console
        self.refresh_hz = refresh_hz
        self.progress: Optional[Progress] = None
        self.task_id: Optional[int] = None

    def start(self, description: str, total: Optional[int] = None) -> None:
        self.progress = Progress(
            SpinnerColumn(style="bright_green"),
            TextColumn("[progress.description]{task.description}", style="bold cyan"),
            BarColumn(complete_style="bright_blue", finished_style="bright_green"),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=False,
            refresh_per_second=max(1, int(self.refresh_hz)),
        )
        self.progress.start()
        self.task_id = self.progress.add_task(description, total=total if total and total > 0 else None)

    def update(self, delta: int) -> None:
        if self.progress is not None and self.task_id is not None:
            self.progress.update(self.task_id, advance=delta)

    def finish(self) -> None:
        if self.progress is not None:
            self.progress.stop()
            self.progress = None


class LoggingProgressReporter(ProgressReporter):
    def __init__(self, logger: logging.Logger, log_every_bytes: int = 256 * 1024 * 1024):
        self.logger = logger
        self.log_every_bytes = log_every_bytes
        self.description = ""
        self.copied = 0
        self.total: Optional[int] = None
        self.last_log_mark = 0

    def start(self, description: str, total: Optional[int] = None) -> None:
        self.description = description
        self.total = total
        self.logger.info("%s (%s)", description, U.human_bytes(total))

    def update(self, delta: int) -> None:
        self.copied += delta
        if self.copied - self.last_log_mark < self.log_every_bytes:
            return
        self.last_log_mark = self.copied
        if self.total:
            self.logger.info(
                "%s: %s / %s (%.1f%%)",
                self.description,
                U.human_bytes(self.copied),
                U.human_bytes(self.total),
                self.copied * 100.0 / self.total,
            )
        else:
            self.logger.info("%s: %s", self.description, U.human_bytes(self.copied))

    def finish(self) -> None:
        self.logger.info("%s: done, %s", self.description, U.human_bytes(self.copied))


class NoopProgressReporter(ProgressReporter):
    def start(self, description: str, total: Optional[int] = None) -> None:
        pass

    def update(self, delta: int) -> None:
        pass

    def finish(self) -> None:
        pass


def create_progress_reporter(show_progress: bool, logger: logging.Logger) -> ProgressReporter:
    """
    show_progress=False -> Noop; TTY -> Rich bar; otherwise periodic log lines.
    """
    if not show_progress:
        return NoopProgressReporter()
    if is_tty():
        return RichProgressReporter(Console(stderr=True))
    return LoggingProgressReporter(logger)
