"""
Reduction mixin defining the public Matrix reduction and comparison API.

The mixin only declares signatures. Dense and sparse implementations are
registered through `matrix_control_path_manager`. All reductions are
observably read-only but may still migrate the receiver to the device the
arbitrator chooses.
"""

from abc import ABC
from typing import Optional


class MatrixMixinReduction(ABC):
    """Abstract mixin declaring reductions and comparisons."""

    def sum_of_elements(self) -> float:
        """Sum of all elements."""

    def sum_of_abs_elements(self) -> float:
        """Sum of absolute values of all elements."""

    def frobenius_norm(self) -> float:
        """Square root of the sum of squared elements."""

    def matrix_norm0(self) -> int:
        """Number of non-zero elements."""

    def has_nan(self) -> bool:
        """True if any element is NaN."""

    def is_equal_to(self, other, threshold: Optional[float] = None) -> bool:
        """
        Compare element-wise with `other`.

        Parameters
        ----------
        other : Matrix
            Matrix of the same shape (any format, any location).
        threshold : Optional[float]
            Maximum absolute difference. Defaults to the configured
            `equality_threshold` (1e-8).

        Returns
        -------
        bool
            False if the shapes differ.
        """
