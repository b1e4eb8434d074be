"""
guard.py - Access/Safety Guard

Three independent controls the lifecycle engine consults before it touches
state:
    - Reentrancy exclusion: one guarded operation in flight at a time.
      Entry sets the flag, exit clears it even on the failure path, and a
      nested entry fails with Reentrant rather than queueing.
    - Pause: an owner-toggled flag gating request creation, funding and
      repayment. Liquidation does not consult it.
    - Ownership: strict identity comparison against the current owner.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator

from .core import Reentrant, EnforcedPause, ExpectedPause, NotOwner, InvalidParameter


class AccessGuard:
    """Reentrancy, pause and ownership state for one engine."""

    def __init__(self, owner: str):
        if not owner:
            raise InvalidParameter("Owner cannot be empty")
        self.owner = owner
        self.paused = False
        self.entered = False

    @contextmanager
    def non_reentrant(self) -> Iterator[None]:
        """
        Scope a guarded operation.

        Raises:
            Reentrant: If another guarded operation is already in flight
        """
        if self.entered:
            raise Reentrant("Reentrant call")
        self.entered = True
        try:
            yield
        finally:
            self.entered = False

    def require_not_paused(self) -> None:
        if self.paused:
            raise EnforcedPause("Operation is paused")

    def only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise NotOwner(f"{caller} is not the owner")

    def pause(self) -> None:
        self.require_not_paused()
        self.paused = True

    def unpause(self) -> None:
        if not self.paused:
            raise ExpectedPause("Operation is not paused")
        self.paused = False

    def transfer_ownership(self, new_owner: str) -> str:
        """Hand ownership to new_owner and return the previous owner."""
        if not new_owner:
            raise InvalidParameter("New owner cannot be empty")
        previous, self.owner = self.owner, new_owner
        return previous

    def __repr__(self):
        return f"AccessGuard(owner={self.owner!r}, paused={self.paused}, entered={self.entered})"
