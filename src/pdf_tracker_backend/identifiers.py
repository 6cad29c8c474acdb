"""
Content identifier generation.

Identifiers look like ``CXM-061524-00001``: a fixed prefix, the issue date as
``MMDDYY`` and a zero-padded sequence number. The sequence number comes from a
:class:`SequenceState`, which owns the counter and serializes access to it so
that concurrent uploads never receive the same number.
"""

from __future__ import annotations

import logging
from datetime import date
from threading import Lock
from typing import TYPE_CHECKING, Callable, List, Optional, Protocol

from .configuration import SequenceSettings
from .errors import SequenceOverflowError

if TYPE_CHECKING:
    from .database import RunDatabase

logger = logging.getLogger(__name__)


class SequenceState(Protocol):
    @property
    def last(self) -> int: ...

    def reserve(self, count: int, maximum: int) -> range: ...


class InMemorySequenceState:
    """
    Process-local counter.

    The counter restarts at ``initial_value`` whenever the process restarts,
    so identifiers and output filenames can repeat across restarts.
    """

    def __init__(self, initial_value: int = 1) -> None:
        self._last = initial_value - 1
        self._lock = Lock()

    @property
    def last(self) -> int:
        with self._lock:
            return self._last

    def reserve(self, count: int, maximum: int) -> range:
        with self._lock:
            start = self._last + 1
            end = self._last + count
            if end > maximum:
                raise SequenceOverflowError(
                    f"Cannot issue {count} identifier(s) after {self._last}: the sequence is limited to {maximum}"
                )
            self._last = end
            return range(start, end + 1)


class SqliteSequenceState:
    """Counter stored in the run database so it survives restarts."""

    def __init__(self, database: "RunDatabase", initial_value: int = 1, name: str = "content") -> None:
        self._database = database
        self._initial_value = initial_value
        self._name = name
        self._lock = Lock()

    @property
    def last(self) -> int:
        stored = self._database.get_sequence(self._name)
        return self._initial_value - 1 if stored is None else stored

    def reserve(self, count: int, maximum: int) -> range:
        with self._lock:
            start = self._database.reserve_sequence(self._name, count, self._initial_value, maximum)
        return range(start, start + count)


class IdentifierGenerator:
    """Issues ``PREFIX-MMDDYY-NNNNN`` identifiers in strictly increasing order."""

    def __init__(
        self,
        state: Optional[SequenceState] = None,
        prefix: str = "CXM",
        width: int = 5,
        date_format: str = "%m%d%y",
        clock: Callable[[], date] = date.today,
    ) -> None:
        self._state = state or InMemorySequenceState()
        self.prefix = prefix
        self.width = width
        self.date_format = date_format
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: SequenceSettings,
        database: Optional["RunDatabase"] = None,
        clock: Callable[[], date] = date.today,
    ) -> "IdentifierGenerator":
        if settings.persistent:
            if database is None:
                raise ValueError("A run database is required for a persistent sequence")
            state: SequenceState = SqliteSequenceState(database, settings.initial_value)
        else:
            state = InMemorySequenceState(settings.initial_value)
        return cls(
            state=state,
            prefix=settings.prefix,
            width=settings.width,
            date_format=settings.date_format,
            clock=clock,
        )

    @property
    def maximum(self) -> int:
        return 10**self.width - 1

    @property
    def last_sequence(self) -> int:
        return self._state.last

    def format(self, date_code: str, sequence: int) -> str:
        return f"{self.prefix}-{date_code}-{sequence:0{self.width}d}"

    def next(self) -> str:
        return self.issue(1)[0]

    def issue(self, count: int, issued_on: Optional[date] = None) -> List[str]:
        """
        Reserve ``count`` consecutive sequence numbers and return their identifiers.

        The whole block is reserved atomically and shares one date code, so a
        document's pages carry contiguous numbers even under concurrent uploads.
        ``issued_on`` supplies the date code; the clock is read when it is None.
        """
        if count < 0:
            raise ValueError("count must not be negative")
        if count == 0:
            return []

        sequences = self._state.reserve(count, self.maximum)
        date_code = (issued_on or self.clock()).strftime(self.date_format)
        identifiers = [self.format(date_code, sequence) for sequence in sequences]
        logger.info(f"Issued identifiers {identifiers[0]} .. {identifiers[-1]}")
        return identifiers


def sequence_of(identifier: str) -> int:
    """Return the numeric sequence segment of ``identifier``."""
    return int(identifier.rsplit("-", 1)[-1])
