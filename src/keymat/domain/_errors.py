"""
Matrix facade exceptions for KeyMat.

This module defines the error kinds raised by the dispatch layer. Every error
is raised synchronously at the point of violation and carries the values a
caller needs to diagnose it (dimensions, names, expected vs. actual).

`DeviceUnavailableError` is the only kind the library recovers from itself:
the device arbitrator catches it and falls back to host placement.
"""

from __future__ import annotations

from typing import Optional


class MatrixError(RuntimeError):
    """Base class of all KeyMat matrix errors."""


class ShapeMismatchError(MatrixError):
    """
    Raised when dimensions or element counts do not agree.

    Attributes
    ----------
    op : str
        Name of the operation that detected the mismatch.
    expected : tuple[int, ...]
        Expected shape (or element count as a 1-tuple).
    actual : tuple[int, ...]
        Actual shape (or element count as a 1-tuple).
    """

    def __init__(
        self, op: str, expected: tuple[int, ...], actual: tuple[int, ...]
    ) -> None:
        """
        Initialize the ShapeMismatchError.

        Parameters
        ----------
        op : str
            Operation name (e.g., "reshape", "verify_size").
        expected : tuple[int, ...]
            Expected dimensions.
        actual : tuple[int, ...]
            Dimensions that were found.
        """
        super().__init__(
            f"{op}: shape mismatch, expected {_fmt_dims(expected)} "
            f"but got {_fmt_dims(actual)}."
        )
        self.op = op
        self.expected = tuple(expected)
        self.actual = tuple(actual)


class InvalidStateError(MatrixError):
    """
    Raised when an operation is attempted in a state that does not allow it.

    Typical causes are operating on an unallocated or format-undetermined
    matrix where a concrete format is required, or resizing/transferring a
    non-owning view.
    """

    def __init__(self, op: str, reason: str) -> None:
        super().__init__(f"{op}: {reason}")
        self.op = op
        self.reason = reason


class ViewInvalidatedError(InvalidStateError):
    """
    Raised when a column-slice view is used after its source storage changed.

    A view records the generation of its source's storage when it is created.
    Resizing, reshaping, switching format or moving the source bumps that
    generation and every outstanding view becomes unusable.
    """

    def __init__(self, op: str, created_at: int, current: int) -> None:
        super().__init__(
            op,
            "view is no longer valid; its source storage changed "
            f"(view generation {created_at}, source generation {current}).",
        )
        self.created_at = created_at
        self.current = current


class DeviceUnavailableError(MatrixError):
    """
    Raised by a device runtime when a device cannot be probed or initialized.

    The device arbitrator recovers from this error by falling back to host
    placement; it only reaches callers that probe devices directly.
    """

    def __init__(self, device_index: int, reason: str) -> None:
        super().__init__(f"Device {device_index} is unavailable: {reason}")
        self.device_index = device_index
        self.reason = reason


class SerializationNameMismatchError(MatrixError):
    """Raised when a persisted matrix name does not match the expected name."""

    def __init__(self, expected: str, actual: Optional[str]) -> None:
        super().__init__(
            f"Matrix name mismatch while reading: expected '{expected}', "
            f"found '{actual}'."
        )
        self.expected = expected
        self.actual = actual


class CapacityExceededError(MatrixError):
    """
    Raised when a sparse buffer needs more non-zeros than it has reserved and
    is not allowed to reallocate (e.g., a non-owning view).
    """

    def __init__(self, required: int, capacity: int) -> None:
        super().__init__(
            f"Sparse capacity exceeded: {required} non-zeros required, "
            f"{capacity} reserved and reallocation is not allowed."
        )
        self.required = required
        self.capacity = capacity


class MatrixTypeNotSupportedError(MatrixError):
    """
    Raised when an operation has no implementation for the matrix's current
    format state.

    Attributes
    ----------
    op : str
        The operation that was attempted (e.g., "element_multiply_with").
    matrix_type : str
        String form of the format state the operation was attempted on.
    """

    def __init__(self, op: str, matrix_type: str) -> None:
        super().__init__(f"{op} is not implemented for matrix type '{matrix_type}'.")
        self.op = op
        self.matrix_type = matrix_type


def _fmt_dims(dims: tuple[int, ...]) -> str:
    if len(dims) == 2:
        return f"{dims[0]} x {dims[1]}"
    return " x ".join(str(d) for d in dims)
