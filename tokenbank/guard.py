"""
guard.py - Reentrancy guard and access control

Two independent capability components the Bank composes:

- ReentrancyGuard: a single flag for the whole bank. While one guarded
  operation is in flight, entering any other guarded operation fails. This
  includes calls made by strategy modules from inside their callbacks.
- AccessControl: the administrator identity and the EOA check.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, Optional

from .core import CallContext, AccessError, ReentrancyError


class ReentrancyGuard:
    """Serializes the guarded surface of the bank."""

    def __init__(self):
        self._active: Optional[str] = None
        self._violation: Optional[str] = None

    @property
    def entered(self) -> bool:
        return self._active is not None

    @property
    def violated(self) -> bool:
        """A nested entry was attempted while the current operation runs."""
        return self._violation is not None

    @contextmanager
    def enter(self, operation: str) -> Iterator[None]:
        """
        Hold the guard for the duration of the block.

        A rejected nested entry is remembered until the outer block exits, so
        the outer operation fails too even if the caller of the nested entry
        swallowed the error.

        Raises:
            ReentrancyError: If another guarded operation is already running
        """
        if self._active is not None:
            message = f"{operation} called while {self._active} is in progress"
            if self._violation is None:
                self._violation = message
            raise ReentrancyError(message)
        self._active = operation
        try:
            yield
            self.check()
        finally:
            self._active = None
            self._violation = None

    def check(self) -> None:
        """
        Raises:
            ReentrancyError: If a nested entry was attempted during this operation
        """
        if self._violation is not None:
            raise ReentrancyError(f"{self._active} aborted: {self._violation}")


class AccessControl:
    """Administrator of the bank and the privileged-operation checks."""

    def __init__(self, admin: str):
        if not admin or not admin.strip():
            raise ValueError("admin cannot be empty")
        self.admin = admin

    def require_admin(self, ctx: CallContext) -> None:
        if ctx.sender != self.admin:
            raise AccessError(f"{ctx.sender} is not the administrator")

    def require_eoa(self, ctx: CallContext) -> None:
        """Only the originating account may call, not a module acting for it."""
        if not ctx.is_eoa:
            raise AccessError(f"{ctx.sender} is not an externally owned account")

    def transfer(self, ctx: CallContext, new_admin: str) -> str:
        """Hand administration to new_admin; returns the previous admin."""
        self.require_admin(ctx)
        if not new_admin or not new_admin.strip():
            raise ValueError("new_admin cannot be empty")
        previous, self.admin = self.admin, new_admin
        return previous

    def snapshot(self) -> str:
        return self.admin

    def restore(self, snapshot: str) -> None:
        self.admin = snapshot
