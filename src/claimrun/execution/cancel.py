"""Cooperative cancellation for the generator, the claim loops and retry budgets.

A :class:`CancellationToken` is created by the orchestrator and shared by every
component of one run. Tripping it never interrupts a store call in flight; it
only stops new work from starting:

* the generator checks it before each chunk,
* claim loops check it at every poll and sleep through it,
* retry budgets given the token stop retrying and wake from backoff.

Example:
    >>> token = CancellationToken()
    >>> token.request_cancel("operator stop")
    >>> await token.sleep(5.0)
    True
"""

from __future__ import annotations

import asyncio


class CancellationToken:
    """Cooperative stop signal shared by the generator and the claim loops.

    Components check ``cancelled`` at their poll points and use ``sleep``
    for every delay, so a cancel request wakes them up instead of waiting
    out the interval. In-flight store calls are never interrupted.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def request_cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep up to *delay* seconds. Returns True if cancelled meanwhile."""
        if delay <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True
