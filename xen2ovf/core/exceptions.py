# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/core/exceptions.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

REDACTED = "***REDACTED***"


def _safe_int(x: Any, default: int = 1) -> int:
    try:
        return int(x)
    except Exception:
        return default


def _clamp_exit_code(code: int) -> int:
    # Exit codes are 0..255.
    if code < 0:
        return 1
    if code > 255:
        return 255
    return code


def _one_line(s: str, limit: int = 600) -> str:
    s = (s or "").strip().replace("\r", " ").replace("\n", " ")
    s = " ".join(s.split())
    return s if len(s) <= limit else (s[: limit - 3] + "...")


_SECRET_KEY_PARTS = (
    "pass",
    "secret",
    "token",
    "apikey",
    "api_key",
    "auth",
    "cookie",
    "session",
    "bearer",
    "private",
)


def _is_secret_key(k: str) -> bool:
    ks = (k or "").lower()
    return any(p in ks for p in _SECRET_KEY_PARTS)


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: (REDACTED if _is_secret_key(str(k)) else _redact(v)) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_redact(v) for v in obj]
    return obj


def _format_context_compact(ctx: Dict[str, Any]) -> str:
    # Stable order, redaction, single-line.
    red = _redact(ctx)
    return ", ".join(f"{k}={red[k]!r}" for k in sorted(red.keys()))


@dataclass(eq=False)
class Xen2OvfError(Exception):
    """
    Base project error with:
      - stable fields for reporting/JSON
      - readable __str__ (what users see)
      - safe code handling (never crashes on int())
    """
    code: int = 1
    msg: str = "error"
    cause: Optional[BaseException] = None
    context: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        self.code = _clamp_exit_code(_safe_int(self.code, default=1))
        self.msg = _one_line(self.msg) or self.__class__.__name__
        if self.context is None:
            self.context = {}
        super().__init__(self.msg)
        self.args = (self.msg,)
        if self.cause is not None:
            self.__cause__ = self.cause

    def with_context(self, **ctx: Any) -> "Xen2OvfError":
        self.context.update(ctx)
        return self

    def user_message(self, *, include_context: bool = False, include_cause: bool = False) -> str:
        """
        Human-friendly message for CLI output/logs.
        """
        parts = [self.msg or self.__class__.__name__]

        if include_context and self.context:
            parts.append(f"[{_one_line(_format_context_compact(self.context))}]")

        if include_cause and self.cause is not None:
            parts.append(f"(cause: {type(self.cause).__name__}: {_one_line(str(self.cause))})")

        return " ".join(parts)

    def __str__(self) -> str:
        return self.user_message(include_context=False, include_cause=False)

    def to_dict(self, *, include_cause: bool = False) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "code": self.code,
            "message": self.msg,
            "context": _redact(self.context or {}),
        }
        if include_cause and self.cause is not None:
            d["cause"] = {"type": type(self.cause).__name__, "message": _one_line(str(self.cause))}
        return d


class Fatal(Xen2OvfError):
    """
    User-facing fatal error (exit code should be honored by top-level main()).
    """
    pass


class XenAPIError(Xen2OvfError):
    """
    A XenAPI call failed where the caller has no local recovery policy.
    """
    pass


class VMNotFoundError(Xen2OvfError):
    """
    Neither the uuid lookup nor the name-label lookup resolved the VM.
    Aborts the whole batch.
    """
    pass


class InvalidVMStateError(Xen2OvfError):
    """
    The VM is neither Halted nor Suspended. Not retried.
    """
    pass


class ExportFailedError(Xen2OvfError):
    """
    Envelope assembly failed for a VM; wraps the underlying cause.
    """
    pass


class DiskTransferError(Xen2OvfError):
    """
    Streaming, writing or verifying one virtual disk failed.
    Aborts the remaining disks of the current VM.
    """
    pass


class ExportCancelled(Xen2OvfError):
    """
    Cooperative cancellation. Never wrapped, never logged as an error.
    """
    pass


def wrap_fatal(msg: str, exc: Optional[BaseException] = None, code: int = 1, **context: Any) -> Fatal:
    return Fatal(code=code, msg=msg, cause=exc, context=context or None)


def wrap_xenapi(msg: str, exc: Optional[BaseException] = None, code: int = 50, **context: Any) -> XenAPIError:
    return XenAPIError(code=code, msg=msg, cause=exc, context=context or None)


def vm_not_found(vm: str, exc: Optional[BaseException] = None) -> VMNotFoundError:
    return VMNotFoundError(code=10, msg=f"Failed to find VM {vm}", cause=exc, context={"vm": vm})


def invalid_vm_state(vm: str, power_state: str) -> InvalidVMStateError:
    return InvalidVMStateError(
        code=11,
        msg=f"VM {vm} is neither halted nor suspended (power state: {power_state})",
        context={"vm": vm, "power_state": power_state},
    )


def export_failed(vm: str, exc: Optional[BaseException] = None) -> ExportFailedError:
    return ExportFailedError(code=12, msg=f"Export failed for VM {vm}", cause=exc, context={"vm": vm})


def disk_transfer_failed(filename: str, exc: Optional[BaseException] = None, **context: Any) -> DiskTransferError:
    ctx = {"file": filename}
    ctx.update(context)
    return DiskTransferError(
        code=13,
        msg=f"Failed to transfer virtual disk {filename}",
        cause=exc,
        context=ctx,
    )


def cancelled(msg: str = "Export cancelled") -> ExportCancelled:
    return ExportCancelled(code=130, msg=msg)


def format_exception_for_cli(e: BaseException, *, verbose: int = 0) -> str:
    """
    One-liner output for CLI.

    verbose=0: just message
    verbose=1: message + compact context (if any)
    verbose>=2: message + context + cause
    """
    if isinstance(e, Xen2OvfError):
        return e.user_message(
            include_context=(verbose >= 1),
            include_cause=(verbose >= 2),
        )

    if verbose >= 2:
        return f"{type(e).__name__}: {_one_line(str(e))}"
    return _one_line(str(e)) or type(e).__name__
