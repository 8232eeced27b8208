"""
Storage cell: the tagged variant behind every `Matrix`.

A `StorageCell` pairs the (Location, MatrixType, MatrixFormat) state with the
backend buffers that back it:

- `buffers` maps each valid side (`Location.HOST` / `Location.DEVICE`) to the
  authoritative buffer on that side. Its keys always equal
  `location.sides()`.
- `retained` keeps the previous family's buffers after a format switch that
  happened while the matrix was in `Location.BOTH`. They are not
  authoritative; a later switch back to that layout on that side reuses the
  allocation instead of making a new one. A transfer that replaces or drops
  a side's buffer discards what that side retained.

The cell is the interior-mutable part of a matrix: logically read-only
operations may still migrate data, and they do so only by mutating the cell.

`generation` counts structural changes (resize, reshape, format switch,
release). Column-slice views record it at creation and refuse to run once it
moves.
"""

from __future__ import annotations

from typing import Any, Optional

from ...domain._errors import InvalidStateError
from ...domain._state import Location, MatrixFormat, MatrixType


class StorageCell:
    """Location/format state plus the buffers that back it."""

    __slots__ = (
        "location",
        "matrix_type",
        "matrix_format",
        "buffers",
        "retained",
        "generation",
    )

    def __init__(self) -> None:
        self.location = Location.UNALLOCATED
        self.matrix_type = MatrixType.UNDETERMINED
        self.matrix_format: Optional[MatrixFormat] = None
        self.buffers: dict[Location, Any] = {}
        self.retained: dict[tuple[Location, MatrixFormat], Any] = {}
        self.generation = 0

    def __repr__(self) -> str:
        fmt = self.matrix_format.value if self.matrix_format else None
        return (
            f"StorageCell(location={self.location.value}, "
            f"type={self.matrix_type.value}, format={fmt}, gen={self.generation})"
        )

    def buffer(self, side: Location) -> Any:
        """Return the authoritative buffer on `side`."""
        buf = self.buffers.get(side)
        if buf is None:
            raise InvalidStateError(
                "buffer", f"no valid {side.value} buffer (location is {self.location.value})"
            )
        return buf

    def set_format(self, matrix_format: Optional[MatrixFormat]) -> None:
        self.matrix_format = matrix_format
        self.matrix_type = (
            matrix_format.matrix_type if matrix_format is not None else MatrixType.UNDETERMINED
        )

    def install(self, side: Location, buf: Any) -> None:
        """Make `buf` the valid buffer on `side`, replacing any previous one."""
        old = self.buffers.get(side)
        if old is not None and old is not buf:
            old.release()
        self.buffers[side] = buf
        self._sync_location()

    def drop(self, side: Location) -> None:
        """Invalidate and release the buffer on `side` (no data movement)."""
        buf = self.buffers.pop(side, None)
        if buf is not None:
            buf.release()
        self._sync_location()

    def keep_only(self, side: Location) -> None:
        """Collapse BOTH to `side`."""
        for other in [s for s in self.buffers if s is not side]:
            self.drop(other)

    def retain(self, side: Location, buf: Any) -> None:
        """Keep a no-longer-authoritative buffer for later reuse."""
        if not buf.owns_buffer:
            return
        key = (side, buf.matrix_format)
        old = self.retained.get(key)
        if old is not None and old is not buf:
            old.release()
        self.retained[key] = buf

    def take_retained(self, side: Location, matrix_format: MatrixFormat) -> Optional[Any]:
        return self.retained.pop((side, matrix_format), None)

    def discard_retained(self, side: Location) -> None:
        """Release the buffers kept for `side`; they belong to its previous allocation."""
        for key in [k for k in self.retained if k[0] is side]:
            self.retained.pop(key).release()

    def bump(self) -> None:
        self.generation += 1

    def release_all(self) -> None:
        """Release every buffer and return to the blank state."""
        for buf in list(self.buffers.values()) + list(self.retained.values()):
            buf.release()
        self.buffers.clear()
        self.retained.clear()
        self.location = Location.UNALLOCATED
        self.set_format(None)
        self.bump()

    def _sync_location(self) -> None:
        self.location = Location.from_sides(
            Location.HOST in self.buffers, Location.DEVICE in self.buffers
        )
