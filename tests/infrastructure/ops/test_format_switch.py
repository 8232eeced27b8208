import unittest

import numpy as np

from keymat.domain._state import MatrixFormat
from keymat.infrastructure.buffers import (
    DeviceDenseBuffer,
    HostDenseBuffer,
    HostSparseBuffer,
)
from keymat.infrastructure.ops import dense_to_sparse, sparse_to_dense, sparse_to_sparse

from .._device_test_utils import MirrorRuntime


def _dense(a) -> HostDenseBuffer:
    buf = HostDenseBuffer(np.float64)
    buf.load_host_array(np.asarray(a, dtype=np.float64))
    return buf


class TestFormatSwitchKernels(unittest.TestCase):
    def setUp(self):
        self.a = np.array(
            [
                [0.0, 1.5, 0.0],
                [2.0, 0.0, 0.0],
                [0.0, 0.0, -3.0],
                [0.0, 4.0, 0.0],
            ]
        )

    def test_dense_to_csc_canonical_arrays(self):
        dst = HostSparseBuffer(MatrixFormat.SPARSE_CSC, np.float64)
        dense_to_sparse(_dense(self.a), dst)
        np.testing.assert_array_equal(dst.indptr, [0, 1, 3, 4])
        np.testing.assert_array_equal(dst.indices, [1, 0, 3, 2])
        np.testing.assert_array_equal(dst.values, [2.0, 1.5, 4.0, -3.0])

    def test_dense_to_csr_canonical_arrays(self):
        dst = HostSparseBuffer(MatrixFormat.SPARSE_CSR, np.float64)
        dense_to_sparse(_dense(self.a), dst)
        np.testing.assert_array_equal(dst.indptr, [0, 1, 2, 3, 4])
        np.testing.assert_array_equal(dst.indices, [1, 0, 2, 1])
        np.testing.assert_array_equal(dst.values, [1.5, 2.0, -3.0, 4.0])

    def test_threshold_drops_small_values(self):
        a = np.array([[1e-9, 0.5], [-1e-9, 2.0]])
        dst = HostSparseBuffer(MatrixFormat.SPARSE_CSC, np.float64)
        dense_to_sparse(_dense(a), dst, threshold=1e-6)
        self.assertEqual(dst.nz_count(), 2)
        np.testing.assert_array_equal(dst.to_numpy(), [[0.0, 0.5], [0.0, 2.0]])

    def test_round_trip_restores_values(self):
        for fmt in (MatrixFormat.SPARSE_CSC, MatrixFormat.SPARSE_CSR):
            mid = HostSparseBuffer(fmt, np.float64)
            dense_to_sparse(_dense(self.a), mid)
            out = HostDenseBuffer(np.float64)
            sparse_to_dense(mid, out)
            np.testing.assert_array_equal(out.to_numpy(), self.a)

    def test_sparse_to_dense_reuses_large_enough_buffer(self):
        mid = HostSparseBuffer(MatrixFormat.SPARSE_CSC, np.float64)
        dense_to_sparse(_dense(self.a), mid)
        out = HostDenseBuffer(np.float64)
        out.allocate(10, 10)
        out.write(9, 9, 7.0)
        sparse_to_dense(mid, out)
        self.assertEqual(out.allocations, 1)
        np.testing.assert_array_equal(out.to_numpy(), self.a)

    def test_csc_to_csr(self):
        csc = HostSparseBuffer(MatrixFormat.SPARSE_CSC, np.float64)
        dense_to_sparse(_dense(self.a), csc)
        csr = HostSparseBuffer(MatrixFormat.SPARSE_CSR, np.float64)
        sparse_to_sparse(csc, csr)
        np.testing.assert_array_equal(csr.to_numpy(), self.a)
        np.testing.assert_array_equal(csr.indptr, [0, 1, 2, 3, 4])

    def test_requires_same_memory_domain(self):
        dev = DeviceDenseBuffer(MirrorRuntime(), 0, np.float64)
        dev.allocate(2, 2)
        with self.assertRaises(ValueError):
            dense_to_sparse(dev, HostSparseBuffer(MatrixFormat.SPARSE_CSC, np.float64))


if __name__ == "__main__":
    unittest.main()
