"""
Location and format state enumerations.

This module defines the small enumerations that together describe where a
matrix's authoritative data lives and in which representation:

- `Location`: which memory domain(s) currently hold valid data.
- `MatrixType`: which buffer family (dense or sparse) is authoritative.
- `MatrixFormat`: the concrete storage layout inside a family.

They are deliberately free of any backend dependency so that both the domain
protocols and the infrastructure facade can share them.
"""

from __future__ import annotations

from enum import Enum


class Location(Enum):
    """
    Memory domain(s) holding the authoritative buffer.

    Attributes
    ----------
    UNALLOCATED : Location
        No backend buffer holds data yet.
    HOST : Location
        Only the host buffer is valid.
    DEVICE : Location
        Only the accelerator buffer is valid.
    BOTH : Location
        Host and accelerator buffers hold identical values. Reads may use
        either side; a write must drop the other side.
    """

    UNALLOCATED = "unallocated"
    HOST = "host"
    DEVICE = "device"
    BOTH = "both"

    def includes(self, side: "Location") -> bool:
        """
        Check whether this state holds valid data on `side`.

        Parameters
        ----------
        side : Location
            `Location.HOST` or `Location.DEVICE`.

        Returns
        -------
        bool
            True if data on `side` is valid in this state.
        """
        if self is Location.BOTH:
            return side in (Location.HOST, Location.DEVICE)
        return self is side

    def sides(self) -> tuple["Location", ...]:
        """Return the concrete sides (HOST and/or DEVICE) covered by this state."""
        if self is Location.BOTH:
            return (Location.HOST, Location.DEVICE)
        if self is Location.UNALLOCATED:
            return ()
        return (self,)

    @staticmethod
    def from_sides(host: bool, device: bool) -> "Location":
        """Build the state covering the given sides."""
        if host and device:
            return Location.BOTH
        if host:
            return Location.HOST
        if device:
            return Location.DEVICE
        return Location.UNALLOCATED


class MatrixType(Enum):
    """
    Buffer family that is authoritative.

    Attributes
    ----------
    UNDETERMINED : MatrixType
        Blank matrix; no family chosen yet.
    DENSE : MatrixType
        Full grid of elements.
    SPARSE : MatrixType
        Compressed non-zero representation.
    """

    UNDETERMINED = "undetermined"
    DENSE = "dense"
    SPARSE = "sparse"


class MatrixFormat(Enum):
    """
    Storage layout within a buffer family.

    Dense storage is always column-major. Sparse storage is either
    compressed-sparse-column (CSC) or compressed-sparse-row (CSR).
    """

    DENSE = "dense"
    SPARSE_CSC = "csc"
    SPARSE_CSR = "csr"

    @property
    def is_sparse(self) -> bool:
        """True for the compressed layouts."""
        return self is not MatrixFormat.DENSE

    @property
    def matrix_type(self) -> MatrixType:
        """Return the family this layout belongs to."""
        return MatrixType.SPARSE if self.is_sparse else MatrixType.DENSE

    @staticmethod
    def default_for(matrix_type: MatrixType) -> "MatrixFormat":
        """Return the default layout of a family (CSC for sparse)."""
        if matrix_type is MatrixType.SPARSE:
            return MatrixFormat.SPARSE_CSC
        return MatrixFormat.DENSE
