"""
Process-level configuration for KeyMat.

`MatrixConfig` collects the tunables of the dispatch layer. Values come from
the constructor or, via `MatrixConfig.from_env()`, from `KEYMAT_*`
environment variables:

- KEYMAT_DEVICE          : default placement ("auto", "cpu", "cuda:N")
- KEYMAT_ZERO_THRESHOLD  : dense -> sparse zero threshold
- KEYMAT_NNZ_RESERVE     : default non-zero reservation of new sparse matrices
- KEYMAT_MIN_FREE_MEMORY : minimum free device memory (bytes) for auto placement
- KEYMAT_DTYPE           : default element type ("float32" or "float64")

The process-wide default arbitrator is built lazily from `from_env()` and may
be replaced with `set_default_arbitrator`. Every `Matrix` also accepts an
explicit arbitrator, so the global default is only a convenience.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import numpy as np

if TYPE_CHECKING:
    from .arbitration._arbitrator import DeviceArbitrator

_SUPPORTED_DTYPES = ("float32", "float64")


@dataclass(frozen=True)
class MatrixConfig:
    """
    Tunables of the matrix dispatch layer.

    Attributes
    ----------
    default_device : str
        Placement used when a matrix is created without a device ("auto",
        "cpu" or "cuda:N").
    zero_threshold : float
        Dense elements with ``abs(x) <= zero_threshold`` are dropped when
        converting to sparse.
    default_nnz_reserve : int
        Non-zero capacity reserved by newly allocated sparse matrices.
    equality_threshold : float
        Default tolerance of `Matrix.is_equal_to`.
    min_compute_capability : tuple[int, int]
        Minimum (major, minor) capability for auto placement.
    min_free_memory_bytes : int
        Minimum free device memory for auto placement.
    dtype : str
        Default element type.
    """

    default_device: str = "auto"
    zero_threshold: float = 0.0
    default_nnz_reserve: int = 10000
    equality_threshold: float = 1e-8
    min_compute_capability: tuple[int, int] = (3, 0)
    min_free_memory_bytes: int = 0
    dtype: str = "float32"

    def __post_init__(self) -> None:
        if self.dtype not in _SUPPORTED_DTYPES:
            raise ValueError(
                f"Unsupported dtype '{self.dtype}'. Expected one of {_SUPPORTED_DTYPES}"
            )
        if self.zero_threshold < 0:
            raise ValueError("zero_threshold must be non-negative")
        if self.default_nnz_reserve < 0:
            raise ValueError("default_nnz_reserve must be non-negative")

    @property
    def numpy_dtype(self) -> np.dtype:
        return np.dtype(self.dtype)

    @classmethod
    def from_env(cls) -> "MatrixConfig":
        """Build a config from `KEYMAT_*` environment variables."""
        defaults = cls()
        return cls(
            default_device=os.environ.get("KEYMAT_DEVICE", defaults.default_device),
            zero_threshold=float(
                os.environ.get("KEYMAT_ZERO_THRESHOLD", defaults.zero_threshold)
            ),
            default_nnz_reserve=int(
                os.environ.get("KEYMAT_NNZ_RESERVE", defaults.default_nnz_reserve)
            ),
            min_free_memory_bytes=int(
                os.environ.get("KEYMAT_MIN_FREE_MEMORY", defaults.min_free_memory_bytes)
            ),
            dtype=os.environ.get("KEYMAT_DTYPE", defaults.dtype),
        )


_default_arbitrator: Optional["DeviceArbitrator"] = None
_default_lock = threading.Lock()


def get_default_arbitrator() -> "DeviceArbitrator":
    """
    Return the process-wide arbitrator, creating it on first use.

    The default uses `CupyRuntime` and a placement policy derived from
    `MatrixConfig.from_env().default_device`.
    """
    global _default_arbitrator
    with _default_lock:
        if _default_arbitrator is None:
            from .arbitration._arbitrator import DeviceArbitrator, PlacementPolicy
            from .runtime._cupy_runtime import CupyRuntime

            config = MatrixConfig.from_env()
            _default_arbitrator = DeviceArbitrator(
                runtime=CupyRuntime(),
                policy=PlacementPolicy.from_device(config.default_device),
                config=config,
            )
        return _default_arbitrator


def set_default_arbitrator(arbitrator: Optional["DeviceArbitrator"]) -> None:
    """Replace the process-wide arbitrator (None resets to lazy creation)."""
    global _default_arbitrator
    with _default_lock:
        _default_arbitrator = arbitrator
