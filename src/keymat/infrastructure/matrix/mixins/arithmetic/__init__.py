"""
Arithmetic mixins and format-specific implementations for Matrix operations.

This package aggregates the arithmetic Matrix mixin and its concrete
control-path implementations:

- fill / set_diagonal_value
- add_with_scale_of / assign_sum_of / scale_in_place
- element_multiply_with / assign_element_product_of / assign_weighted_product
- assign_transpose_of
- set_column_slice / set_column

Implementation modules are imported for their side effects (registering
dense, sparse and undetermined control paths). Only the base mixin is public.
"""

from ._matrix_fill import *
from ._matrix_scale_add import *
from ._matrix_products import *
from ._matrix_transpose import *
from ._matrix_column_slice import *
from ._matrix_set_column import *
from ._base import MatrixMixinArithmetic

__all__ = [
    MatrixMixinArithmetic.__name__,
]
