"""
Dense and sparse control paths of the product operations.

Element-wise products keep the receiver's family. The weighted matrix product

    self = alpha * op(a) @ op(b) + beta * self

accepts any mix of dense and sparse operands; the receiver decides whether
the result is stored dense or sparse.
"""

from .....domain._errors import ShapeMismatchError
from .....domain._state import MatrixFormat, MatrixType
from ..._matrix_builder import matrix_control_path_manager
from .._operands import (
    aliases,
    check_same_shape,
    dense_operand,
    product_operand,
    sparse_module_for,
    sparse_operand,
)
from ._base import MatrixMixinArithmetic as MMA


@matrix_control_path_manager(MMA, MMA.element_multiply_with, MatrixType.DENSE)
def element_multiply_with_dense(self, a):
    check_same_shape("element_multiply_with", self, a)
    device = self._arbitrate(a, writes=(self,))
    out = self._begin_write(device)
    out.array[...] *= dense_operand(a, device, "element_multiply_with")
    return self


@matrix_control_path_manager(MMA, MMA.element_multiply_with, MatrixType.SPARSE)
def element_multiply_with_sparse(self, a):
    check_same_shape("element_multiply_with", self, a)
    device = self._arbitrate(a, writes=(self,))
    mine = sparse_operand(self, device, "element_multiply_with")
    # multiply() may hand back a dense result for a dense argument.
    result = sparse_module_for(self, device).csc_matrix(
        mine.multiply(product_operand(a, device, "element_multiply_with"))
    )
    out = self._begin_write(device)
    out.load_matrix(result)
    return self


@matrix_control_path_manager(MMA, MMA.assign_element_product_of, MatrixType.DENSE)
def assign_element_product_of_dense(self, a, b):
    check_same_shape("assign_element_product_of", a, b)
    overwrite = not aliases(self, a, b)
    device = self._arbitrate(a, b, writes=(self,), overwrite=overwrite)
    result = dense_operand(a, device, "assign_element_product_of") * dense_operand(
        b, device, "assign_element_product_of"
    )
    out = self._begin_write(device, a.shape, overwrite=overwrite)
    out.array[...] = result
    return self


@matrix_control_path_manager(MMA, MMA.assign_element_product_of, MatrixType.SPARSE)
def assign_element_product_of_sparse(self, a, b):
    check_same_shape("assign_element_product_of", a, b)
    overwrite = not aliases(self, a, b)
    device = self._arbitrate(a, b, writes=(self,), overwrite=overwrite)
    result = sparse_operand(a, device, "assign_element_product_of").multiply(
        sparse_operand(b, device, "assign_element_product_of")
    )
    out = self._begin_write(device, a.shape, overwrite=overwrite)
    out.load_matrix(sparse_module_for(self, device).csc_matrix(result))
    return self


@matrix_control_path_manager(MMA, MMA.assign_element_product_of, MatrixType.UNDETERMINED)
def assign_element_product_of_undetermined(self, a, b):
    self._adopt_format_of(a, "assign_element_product_of")
    return self.assign_element_product_of(a, b)


def _product_shape(a, transpose_a: bool, b, transpose_b: bool) -> tuple[int, int]:
    m, ka = (a.num_cols, a.num_rows) if transpose_a else a.shape
    kb, n = (b.num_cols, b.num_rows) if transpose_b else b.shape
    if ka != kb:
        raise ShapeMismatchError("assign_weighted_product", (ka, n), (kb, n))
    return m, n


def _check_accumulator(self, shape: tuple[int, int], beta: float) -> None:
    if beta != 0 and self.shape != shape:
        raise ShapeMismatchError("assign_weighted_product", shape, self.shape)


def _oriented(m, transpose: bool, device):
    x = product_operand(m, device, "assign_weighted_product")
    return x.T if transpose else x


@matrix_control_path_manager(MMA, MMA.assign_weighted_product, MatrixType.DENSE)
def assign_weighted_product_dense(
    self, alpha: float, a, transpose_a: bool, b, transpose_b: bool, beta: float
):
    shape = _product_shape(a, transpose_a, b, transpose_b)
    _check_accumulator(self, shape, beta)
    overwrite = beta == 0 and not aliases(self, a, b)
    device = self._arbitrate(a, b, writes=(self,), overwrite=overwrite)

    pa, pb = _oriented(a, transpose_a, device), _oriented(b, transpose_b, device)
    a_sparse = a.matrix_format is not MatrixFormat.DENSE
    b_sparse = b.matrix_format is not MatrixFormat.DENSE
    if a_sparse and b_sparse:
        product = (pa @ pb).toarray()
    elif b_sparse:
        # Let the sparse operand drive the product.
        product = (pb.T @ pa.T).T
    else:
        product = pa @ pb

    out = self._begin_write(device, shape, overwrite=overwrite)
    if beta == 0:
        out.array[...] = alpha * product
    else:
        out.array[...] = alpha * product + beta * out.array
    return self


@matrix_control_path_manager(MMA, MMA.assign_weighted_product, MatrixType.SPARSE)
def assign_weighted_product_sparse(
    self, alpha: float, a, transpose_a: bool, b, transpose_b: bool, beta: float
):
    shape = _product_shape(a, transpose_a, b, transpose_b)
    _check_accumulator(self, shape, beta)
    overwrite = beta == 0 and not aliases(self, a, b)
    device = self._arbitrate(a, b, writes=(self,), overwrite=overwrite)

    pa = sparse_operand(a, device, "assign_weighted_product")
    pb = sparse_operand(b, device, "assign_weighted_product")
    result = alpha * ((pa.T if transpose_a else pa) @ (pb.T if transpose_b else pb))
    if beta != 0:
        result = result + beta * sparse_operand(self, device, "assign_weighted_product")

    out = self._begin_write(device, shape, overwrite=overwrite)
    out.load_matrix(result)
    return self


@matrix_control_path_manager(MMA, MMA.assign_weighted_product, MatrixType.UNDETERMINED)
def assign_weighted_product_undetermined(
    self, alpha: float, a, transpose_a: bool, b, transpose_b: bool, beta: float
):
    if a.matrix_type is MatrixType.SPARSE and b.matrix_type is MatrixType.SPARSE:
        self._adopt_format_of(a, "assign_weighted_product")
    else:
        self._cell.set_format(MatrixFormat.DENSE)
    return self.assign_weighted_product(alpha, a, transpose_a, b, transpose_b, beta)
