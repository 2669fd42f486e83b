"""Update batches: mark now, sweep when the outermost batch exits.

A render pass can unregister a field and register its replacement at the
same path within one synchronous update. Cleanup decisions for removed
fields (reset the value or keep it) must see the registry after the whole
pass, not halfway through it. Inside a batch, sweeps queue up; they run
once the outermost batch ends. Outside a batch they run immediately.
"""

from __future__ import annotations

from typing import Callable

Sweep = Callable[[], None]


class UpdateBatch:
    """Batch depth counter plus the sweeps deferred while it is open."""

    __slots__ = ("_depth", "_pending")

    def __init__(self) -> None:
        self._depth = 0
        self._pending: list[Sweep] = []

    @property
    def active(self) -> bool:
        return self._depth > 0

    def begin_batch(self) -> None:
        """Enter a batching scope. Nested batches are supported."""
        self._depth += 1

    def end_batch(self) -> None:
        """Exit a batching scope. When the outermost scope exits, flush pending sweeps."""
        self._depth -= 1
        if self._depth == 0:
            self._flush_pending()

    def schedule(self, sweep: Sweep) -> None:
        """Run sweep now, or defer it when a batch is open."""
        if self._depth > 0:
            self._pending.append(sweep)
        else:
            sweep()

    def _flush_pending(self) -> None:
        """Run all pending sweeps, in order. Handles sweeps scheduled during flush."""
        while self._pending:
            sweep = self._pending.pop(0)
            try:
                sweep()
            except Exception:
                # Remaining sweeps still run before the error propagates.
                self._flush_pending()
                raise

    def get_pending_count(self) -> int:
        """Number of sweeps waiting to run. Useful for testing."""
        return len(self._pending)
