"""Arrival-ordered holding area for deferred acquisitions."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterator

from budgetgate.budget.types import RequestType

logger = logging.getLogger(__name__)


@dataclass
class PendingAcquisition:
    """A blocked caller waiting for every one of its request types."""

    required_types: frozenset[RequestType]
    future: asyncio.Future[None]
    arrival_order: int
    key: str | None = None
    enqueued_at: float = field(default=0.0)

    @property
    def abandoned(self) -> bool:
        """The waiting task went away before it was granted."""
        return self.future.done()

    def waited(self) -> float:
        """Seconds since this entry joined the queue."""
        return self.future.get_loop().time() - self.enqueued_at


class FairWaitQueue:
    """
    FIFO of pending acquisitions.

    Entries are appended at the tail and scanned head first, so older
    requests are always evaluated before newer ones. Not locked; the
    owning AdmissionController serializes access.
    """

    def __init__(self) -> None:
        self._entries: deque[PendingAcquisition] = deque()
        self._sequence = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PendingAcquisition]:
        return iter(self._entries)

    def enqueue(
        self,
        required_types: frozenset[RequestType],
        key: str | None = None,
    ) -> PendingAcquisition:
        """Append a new entry whose future resolves once it is granted."""
        loop = asyncio.get_running_loop()
        entry = PendingAcquisition(
            required_types=required_types,
            future=loop.create_future(),
            arrival_order=next(self._sequence),
            key=key,
            enqueued_at=loop.time(),
        )
        self._entries.append(entry)
        return entry

    def discard(self, entry: PendingAcquisition) -> bool:
        try:
            self._entries.remove(entry)
            return True
        except ValueError:
            return False

    def drain(self, grant: Callable[[PendingAcquisition], bool]) -> list[PendingAcquisition]:
        """
        Scan every entry once, oldest first, granting what can be granted.

        Args:
            grant: Called per live entry; performs the deduction and returns
                True if the entry was satisfied

        Returns:
            Entries granted during this scan, in arrival order
        """
        granted: list[PendingAcquisition] = []
        remaining: deque[PendingAcquisition] = deque()

        while self._entries:
            entry = self._entries.popleft()
            if entry.abandoned:
                logger.debug(f"Dropping abandoned acquisition #{entry.arrival_order}")
                continue
            if grant(entry):
                entry.future.set_result(None)
                logger.debug(
                    f"Granted acquisition #{entry.arrival_order} (key={entry.key}) "
                    f"after waiting {entry.waited():.3f}s"
                )
                granted.append(entry)
            else:
                remaining.append(entry)

        self._entries = remaining
        return granted
