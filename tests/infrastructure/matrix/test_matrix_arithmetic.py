import unittest

import numpy as np

from keymat.domain._errors import (
    InvalidStateError,
    MatrixTypeNotSupportedError,
    ShapeMismatchError,
)
from keymat.domain._state import Location, MatrixFormat, MatrixType
from keymat.infrastructure.matrix import Matrix

from .._device_test_utils import MirrorRuntime, host_arbitrator, make_arbitrator


class _HostCase(unittest.TestCase):
    def setUp(self):
        self.arb = host_arbitrator()
        rng = np.random.default_rng(7)
        self.a = rng.normal(size=(3, 4))
        self.b = rng.normal(size=(3, 4))

    def dense(self, array):
        return Matrix.from_numpy(array, dtype=np.float64, arbitrator=self.arb)

    def sparse(self, array, fmt="csc"):
        return Matrix.from_numpy(array, matrix_format=fmt, dtype=np.float64, arbitrator=self.arb)

    def blank(self):
        return Matrix(dtype=np.float64, arbitrator=self.arb)


class TestFillAndDiagonal(_HostCase):
    def test_fill_dense(self):
        m = self.dense(self.a).fill(2.5)
        np.testing.assert_array_equal(m.to_numpy(), np.full((3, 4), 2.5))

    def test_fill_sparse_with_zero_keeps_capacity(self):
        m = self.sparse(self.a)
        capacity = m.allocated_size
        m.fill(0)
        self.assertEqual(m.nz_count, 0)
        self.assertEqual(m.allocated_size, capacity)

    def test_fill_sparse_with_value(self):
        with self.assertRaises(MatrixTypeNotSupportedError):
            self.sparse(self.a).fill(1.0)

    def test_fill_blank_matrix(self):
        with self.assertRaises(InvalidStateError):
            self.blank().fill(1.0)

    def test_diagonal(self):
        m = Matrix.zeros(3, 3, dtype=np.float64, arbitrator=self.arb).set_diagonal_value(4.0)
        np.testing.assert_array_equal(m.to_numpy(), 4.0 * np.eye(3))
        with self.assertRaises(ShapeMismatchError):
            self.dense(self.a).set_diagonal_value(1.0)


class TestScaleAdd(_HostCase):
    def test_add_with_scale_of(self):
        c = self.dense(self.a)
        Matrix.scale_and_add(0.5, self.dense(self.b), c)
        np.testing.assert_allclose(c.to_numpy(), self.a + 0.5 * self.b)

    def test_add_into_sparse(self):
        c = self.sparse(np.eye(3))
        c.add_with_scale_of(2.0, self.dense(np.ones((3, 3))))
        self.assertIs(c.matrix_type, MatrixType.SPARSE)
        np.testing.assert_allclose(c.to_numpy(), np.eye(3) + 2.0)

    def test_add_into_blank_adopts_format(self):
        c = self.blank()
        c.add_with_scale_of(3.0, self.sparse(np.eye(2)))
        self.assertIs(c.matrix_format, MatrixFormat.SPARSE_CSC)
        np.testing.assert_allclose(c.to_numpy(), 3.0 * np.eye(2))

    def test_shape_mismatch(self):
        with self.assertRaises(ShapeMismatchError):
            self.dense(self.a).add_with_scale_of(1.0, self.dense(np.ones((4, 3))))

    def test_assign_sum_of(self):
        c = self.blank().assign_sum_of(self.dense(self.a), self.dense(self.b))
        np.testing.assert_allclose(c.to_numpy(), self.a + self.b)

        s = self.sparse(np.zeros((3, 4))).assign_sum_of(self.sparse(self.a), self.dense(self.b))
        self.assertIs(s.matrix_type, MatrixType.SPARSE)
        np.testing.assert_allclose(s.to_numpy(), self.a + self.b)

    def test_assign_sum_resizes_receiver(self):
        c = self.dense(np.zeros((1, 1))).assign_sum_of(self.dense(self.a), self.dense(self.b))
        self.assertEqual(c.shape, (3, 4))

    def test_assign_sum_with_aliased_receiver(self):
        c = self.dense(self.a)
        c.assign_sum_of(c, self.dense(self.b))
        np.testing.assert_allclose(c.to_numpy(), self.a + self.b)

    def test_scale(self):
        m = Matrix.scale(-2.0, self.dense(self.a))
        np.testing.assert_allclose(m.to_numpy(), -2.0 * self.a)
        s = self.sparse(self.a).scale_in_place(0.5)
        np.testing.assert_allclose(s.to_numpy(), 0.5 * self.a)


class TestProducts(_HostCase):
    def test_element_multiply(self):
        m = self.dense(self.a).element_multiply_with(self.dense(self.b))
        np.testing.assert_allclose(m.to_numpy(), self.a * self.b)

        s = self.sparse(np.eye(3)).element_multiply_with(self.dense(np.full((3, 3), 3.0)))
        self.assertIs(s.matrix_type, MatrixType.SPARSE)
        np.testing.assert_allclose(s.to_numpy(), 3.0 * np.eye(3))

    def test_assign_element_product(self):
        c = self.blank().assign_element_product_of(self.dense(self.a), self.dense(self.b))
        np.testing.assert_allclose(c.to_numpy(), self.a * self.b)
        s = self.blank().assign_element_product_of(self.sparse(self.a), self.sparse(self.b))
        self.assertIs(s.matrix_type, MatrixType.SPARSE)
        np.testing.assert_allclose(s.to_numpy(), self.a * self.b)

    def test_multiply(self):
        c = Matrix.multiply(self.dense(self.a), self.dense(self.b.T))
        self.assertIs(c.matrix_type, MatrixType.DENSE)
        np.testing.assert_allclose(c.to_numpy(), self.a @ self.b.T)

    def test_multiply_mixed_operands(self):
        expected = self.a @ self.b.T
        for a, b in (
            (self.sparse(self.a), self.dense(self.b.T)),
            (self.dense(self.a), self.sparse(self.b.T)),
        ):
            c = Matrix.multiply(a, b)
            self.assertIs(c.matrix_type, MatrixType.DENSE)
            np.testing.assert_allclose(c.to_numpy(), expected)

        c = Matrix.multiply(self.sparse(self.a), self.sparse(self.b.T))
        self.assertIs(c.matrix_type, MatrixType.SPARSE)
        np.testing.assert_allclose(c.to_numpy(), expected)

    def test_weighted_product_with_transposes(self):
        c0 = np.ones((4, 4))
        c = self.dense(c0)
        Matrix.multiply_and_weighted_add(2.0, self.dense(self.a), True, self.dense(self.b), False, 0.5, c)
        np.testing.assert_allclose(c.to_numpy(), 2.0 * self.a.T @ self.b + 0.5 * c0)

        s = self.sparse(c0)
        s.assign_weighted_product(1.0, self.sparse(self.a), True, self.dense(self.b), False, 1.0)
        np.testing.assert_allclose(s.to_numpy(), self.a.T @ self.b + c0)

    def test_weighted_product_checks_shapes(self):
        with self.assertRaises(ShapeMismatchError):
            Matrix.multiply(self.dense(self.a), self.dense(self.b))
        with self.assertRaises(ShapeMismatchError):
            self.dense(np.ones((2, 2))).assign_weighted_product(
                1.0, self.dense(self.a), False, self.dense(self.b.T), False, 1.0
            )

    def test_transpose(self):
        np.testing.assert_array_equal(self.dense(self.a).transpose().to_numpy(), self.a.T)
        t = self.sparse(self.a).transpose()
        self.assertIs(t.matrix_type, MatrixType.SPARSE)
        np.testing.assert_array_equal(t.to_numpy(), self.a.T)
        m = self.dense(self.a)
        with self.assertRaises(InvalidStateError):
            m.assign_transpose_of(m)


class TestSetColumnSlice(_HostCase):
    def test_copies_block(self):
        m = self.dense(self.a)
        m.set_column_slice(self.dense(np.zeros((3, 2))), 1, 2)
        expected = self.a.copy()
        expected[:, 1:3] = 0.0
        np.testing.assert_array_equal(m.to_numpy(), expected)

    def test_errors(self):
        m = self.dense(self.a)
        with self.assertRaises(IndexError):
            m.set_column_slice(self.dense(np.zeros((3, 2))), 3, 2)
        with self.assertRaises(ShapeMismatchError):
            m.set_column_slice(self.dense(np.zeros((2, 2))), 0, 2)
        with self.assertRaises(MatrixTypeNotSupportedError):
            self.sparse(self.a).set_column_slice(self.dense(np.zeros((3, 1))), 0, 1)


class TestSetColumn(_HostCase):
    def test_dense_scalar_values_and_matrix(self):
        m = self.dense(self.a)
        m.set_column(5.0, 0)
        m.set_column([1.0, 2.0, 3.0], 1)
        m.set_column(self.dense(np.array([[7.0], [8.0], [9.0]])), 3)
        expected = self.a.copy()
        expected[:, 0] = 5.0
        expected[:, 1] = [1.0, 2.0, 3.0]
        expected[:, 3] = [7.0, 8.0, 9.0]
        np.testing.assert_array_equal(m.to_numpy(), expected)

    def test_sparse_inserts_non_zeros(self):
        a = np.array([[1.0, 0.0], [0.0, 0.0], [0.0, 2.0]])
        m = self.sparse(a)
        m.set_column(np.array([0.0, 4.0, 0.0]), 0)
        expected = np.array([[0.0, 0.0], [4.0, 0.0], [0.0, 2.0]])
        np.testing.assert_array_equal(m.to_numpy(), expected)
        self.assertIs(m.matrix_type, MatrixType.SPARSE)

        m.set_column(self.dense(np.array([[3.0], [0.0], [0.0]])), 1)
        np.testing.assert_array_equal(m.to_numpy()[:, 1], [3.0, 0.0, 0.0])

    def test_errors(self):
        m = self.dense(self.a)
        with self.assertRaises(IndexError):
            m.set_column(1.0, 4)
        with self.assertRaises(ShapeMismatchError):
            m.set_column([1.0, 2.0], 0)
        with self.assertRaises(ShapeMismatchError):
            m.set_column(self.dense(np.zeros((3, 2))), 0)
        with self.assertRaises(InvalidStateError):
            self.blank().set_column(1.0, 0)

    def test_device_receiver_takes_host_column(self):
        runtime = MirrorRuntime()
        arb = make_arbitrator(runtime)
        m = Matrix.from_numpy(np.zeros((2, 2)), device="cuda:0", arbitrator=arb)
        col = Matrix.from_numpy(np.array([[1.0], [2.0]]), device="cpu", arbitrator=arb)
        m.set_column(col, 1)
        self.assertIs(m.location, Location.DEVICE)
        self.assertTrue(col.location.includes(Location.HOST))
        np.testing.assert_array_equal(m.to_numpy(), [[0.0, 1.0], [0.0, 2.0]])


class TestReductions(_HostCase):
    def test_dense_and_sparse_agree(self):
        a = self.a.copy()
        a[a < 0] = 0.0
        for m in (self.dense(a), self.sparse(a), self.sparse(a, "csr")):
            self.assertAlmostEqual(m.sum_of_elements(), a.sum())
            self.assertAlmostEqual(m.sum_of_abs_elements(), np.abs(a).sum())
            self.assertAlmostEqual(m.frobenius_norm(), np.linalg.norm(a))
            self.assertEqual(m.matrix_norm0(), int(np.count_nonzero(a)))
            self.assertFalse(m.has_nan())

    def test_has_nan(self):
        a = self.a.copy()
        a[1, 2] = np.nan
        self.assertTrue(self.dense(a).has_nan())

    def test_unallocated_reduction(self):
        m = Matrix(matrix_type="dense", arbitrator=self.arb)
        with self.assertRaises(InvalidStateError):
            m.sum_of_elements()

    def test_equality(self):
        a = self.dense(self.a)
        self.assertTrue(Matrix.are_equal(a, self.dense(self.a)))
        self.assertTrue(a.is_equal_to(self.dense(self.a + 1e-10)))
        self.assertFalse(a.is_equal_to(self.dense(self.a + 1e-3)))
        self.assertTrue(a.is_equal_to(self.dense(self.a + 1e-3), threshold=1e-2))
        self.assertFalse(a.is_equal_to(self.dense(np.ones((4, 3)))))
        self.assertTrue(self.sparse(self.a).is_equal_to(a))
        self.assertTrue(self.sparse(self.a).is_equal_to(self.sparse(self.a)))
        self.assertFalse(self.sparse(self.a).is_equal_to(self.sparse(self.b)))


class TestMixedPlacement(unittest.TestCase):
    def setUp(self):
        self.runtime = MirrorRuntime()
        self.arb = make_arbitrator(self.runtime)

    def test_host_and_device_operands_meet_with_one_transfer(self):
        a = Matrix.from_numpy(np.ones((4, 4)), device="cpu", arbitrator=self.arb)
        b = Matrix.from_numpy(np.full((4, 4), 2.0), device="cuda:0", arbitrator=self.arb)
        before = self.runtime.transfers

        c = Matrix(arbitrator=self.arb).assign_sum_of(a, b)
        self.assertEqual(self.runtime.transfers - before, 1)
        self.assertIs(a.location, Location.BOTH)
        self.assertIs(b.location, Location.DEVICE)
        self.assertIs(c.location, Location.DEVICE)
        np.testing.assert_array_equal(c.to_numpy(), np.full((4, 4), 3.0))

    def test_larger_operand_decides_placement(self):
        big = Matrix.from_numpy(np.ones((8, 8)), device="cpu", arbitrator=self.arb)
        small = Matrix.from_numpy(np.ones((8, 1)), device="cuda:0", arbitrator=self.arb)
        out = Matrix(arbitrator=self.arb)
        Matrix.multiply(big, small, out)
        self.assertIs(out.location, Location.HOST)
        self.assertIs(small.location, Location.BOTH)
        np.testing.assert_array_equal(out.to_numpy(), np.full((8, 1), 8.0))

    def test_overwritten_receiver_is_not_copied(self):
        a = Matrix.from_numpy(np.ones((4, 4)), device="cuda:0", arbitrator=self.arb)
        b = Matrix.from_numpy(np.ones((4, 4)), device="cuda:0", arbitrator=self.arb)
        c = Matrix.from_numpy(np.zeros((4, 4)), device="cpu", arbitrator=self.arb)
        before = self.runtime.transfers
        c.assign_sum_of(a, b)
        self.assertEqual(self.runtime.transfers, before)
        self.assertIs(c.location, Location.DEVICE)

    def test_reduction_on_device_operand(self):
        m = Matrix.from_numpy(np.full((2, 3), 2.0), device="cuda:0", arbitrator=self.arb)
        self.assertEqual(m.sum_of_elements(), 12.0)
        self.assertIs(m.location, Location.DEVICE)


if __name__ == "__main__":
    unittest.main()
