"""
Arithmetic mixin defining the public Matrix arithmetic API.

This module declares :class:`MatrixMixinArithmetic`, an abstract mixin that
specifies the *interface* of the in-place and assigning arithmetic entry
points of `Matrix`.

The mixin performs no computation. Dense and sparse implementations are
registered elsewhere through `matrix_control_path_manager` and selected at
runtime from the receiver's `matrix_type`. Every implementation first lets
the facade arbitrate one device for all operands and bring them there, then
delegates to NumPy / SciPy on the host or CuPy on the accelerator.
"""

from abc import ABC


class MatrixMixinArithmetic(ABC):
    """
    Abstract mixin declaring arithmetic operations.

    Notes
    -----
    - Methods returning the receiver allow chaining.
    - Operands that are only read may be copied to the chosen device without
      being moved (their location becomes BOTH).
    - A format-undetermined receiver of an ``assign_*`` method adopts the
      layout of its first operand.
    """

    def fill(self, value: float) -> "MatrixMixinArithmetic":
        """
        Set every element to `value`.

        Sparse matrices only accept 0, which removes all non-zeros while
        keeping the reserved capacity.
        """

    def set_diagonal_value(self, value: float) -> "MatrixMixinArithmetic":
        """Set the main diagonal of a square matrix to `value`."""

    def add_with_scale_of(self, alpha: float, a) -> "MatrixMixinArithmetic":
        """In place: ``self += alpha * a``. Shapes must match."""

    def assign_sum_of(self, a, b) -> "MatrixMixinArithmetic":
        """``self = a + b``. The receiver is resized to the operands' shape."""

    def scale_in_place(self, alpha: float) -> "MatrixMixinArithmetic":
        """In place: ``self *= alpha``."""

    def element_multiply_with(self, a) -> "MatrixMixinArithmetic":
        """In place element-wise product: ``self = self .* a``."""

    def assign_element_product_of(self, a, b) -> "MatrixMixinArithmetic":
        """``self = a .* b``."""

    def assign_transpose_of(self, a) -> "MatrixMixinArithmetic":
        """``self = a^T``."""

    def assign_weighted_product(
        self,
        alpha: float,
        a,
        transpose_a: bool,
        b,
        transpose_b: bool,
        beta: float,
    ) -> "MatrixMixinArithmetic":
        """
        ``self = alpha * op(a) @ op(b) + beta * self``.

        ``op(x)`` is ``x^T`` when the matching transpose flag is set. With
        ``beta == 0`` the previous contents of the receiver are ignored and
        it is resized to the product's shape.
        """

    def set_column_slice(self, from_matrix, start_column: int, num_cols: int) -> "MatrixMixinArithmetic":
        """
        Copy ``from_matrix[:, 0:num_cols]`` into
        ``self[:, start_column:start_column + num_cols]``.

        The receiver must already have the right number of rows and at least
        ``start_column + num_cols`` columns. Nothing is aliased.
        """

    def set_column(self, value, col_index: int) -> "MatrixMixinArithmetic":
        """
        Overwrite column `col_index` with `value`: a scalar, ``num_rows``
        values, or a ``num_rows x 1`` matrix.
        """
