import unittest

import numpy as np

from keymat.domain._errors import InvalidStateError, ShapeMismatchError
from keymat.domain._state import Location, MatrixFormat
from keymat.infrastructure.buffers import (
    _dense_buffer,
    DeviceDenseBuffer,
    HostDenseBuffer,
    HostSparseBuffer,
    make_buffer,
)

from .._device_test_utils import MirrorRuntime


def _host(a: np.ndarray) -> HostDenseBuffer:
    buf = HostDenseBuffer(np.float64)
    buf.load_host_array(a)
    return buf


class TestHostDenseBuffer(unittest.TestCase):
    def test_allocate_is_zeroed(self):
        buf = HostDenseBuffer()
        buf.allocate(2, 3)
        self.assertEqual(buf.shape, (2, 3))
        self.assertEqual(buf.capacity, 6)
        self.assertEqual(buf.allocations, 1)
        np.testing.assert_array_equal(buf.to_numpy(), np.zeros((2, 3), dtype=np.float32))

    def test_storage_is_column_major(self):
        a = np.arange(6, dtype=np.float64).reshape(2, 3)
        buf = _host(a)
        np.testing.assert_array_equal(buf.flat, np.ravel(a, order="F"))
        self.assertEqual(buf.read(1, 2), 5.0)

    def test_write_then_read(self):
        buf = HostDenseBuffer()
        buf.allocate(3, 3)
        buf.write(2, 1, 4.5)
        self.assertEqual(buf.read(2, 1), 4.5)
        self.assertEqual(buf.read(1, 2), 0.0)

    def test_out_of_bounds_access_raises(self):
        buf = HostDenseBuffer()
        buf.allocate(2, 2)
        with self.assertRaises(IndexError):
            buf.read(2, 0)
        with self.assertRaises(IndexError):
            buf.write(0, -1, 1.0)

    def test_grow_only_resize_within_capacity_does_not_allocate(self):
        a = np.arange(12, dtype=np.float64).reshape(3, 4)
        buf = _host(a)
        before = buf.allocations
        buf.resize(2, 3)
        self.assertEqual(buf.allocations, before)
        self.assertEqual(buf.capacity, 12)
        np.testing.assert_array_equal(buf.to_numpy(), a[:2, :3])

    def test_grow_only_resize_keeps_overlap_when_growing_back(self):
        a = np.arange(12, dtype=np.float64).reshape(3, 4)
        buf = _host(a)
        buf.resize(3, 2)
        buf.resize(3, 4)
        np.testing.assert_array_equal(buf.to_numpy()[:, :2], a[:, :2])

    def test_resize_beyond_capacity_allocates(self):
        buf = HostDenseBuffer()
        buf.allocate(2, 2)
        buf.resize(3, 3)
        self.assertEqual(buf.allocations, 2)
        self.assertEqual(buf.capacity, 9)

    def test_exact_resize_reallocates_when_not_grow_only(self):
        buf = HostDenseBuffer()
        buf.allocate(4, 4)
        buf.resize(2, 2, grow_only=False)
        self.assertEqual(buf.capacity, 4)
        self.assertEqual(buf.allocations, 2)

    def test_reshape_relabels(self):
        a = np.arange(6, dtype=np.float64).reshape(2, 3)
        buf = _host(a)
        buf.reshape(3, 2)
        np.testing.assert_array_equal(buf.to_numpy(), np.reshape(a, (3, 2), order="F"))
        with self.assertRaises(ShapeMismatchError):
            buf.reshape(4, 2)

    def test_column_slice_aliases_source(self):
        a = np.arange(12, dtype=np.float64).reshape(3, 4)
        buf = _host(a)
        view = buf.column_slice(1, 2)
        self.assertFalse(view.owns_buffer)
        np.testing.assert_array_equal(view.to_numpy(), a[:, 1:3])
        view.write(0, 0, -1.0)
        self.assertEqual(buf.read(0, 1), -1.0)

    def test_view_cannot_reallocate(self):
        buf = _host(np.ones((2, 4)))
        view = buf.column_slice(0, 2)
        with self.assertRaises(InvalidStateError):
            view.resize(5, 5)
        with self.assertRaises(InvalidStateError):
            view.allocate(1, 1)

    def test_column_slice_out_of_range(self):
        buf = _host(np.ones((2, 4)))
        with self.assertRaises(IndexError):
            buf.column_slice(3, 2)

    def test_bulk_copy_is_independent(self):
        src = _host(np.ones((2, 2)))
        dst = HostDenseBuffer(np.float64)
        src.bulk_copy_to(dst)
        dst.write(0, 0, 7.0)
        self.assertEqual(src.read(0, 0), 1.0)

    def test_bulk_copy_rejects_sparse_target(self):
        src = _host(np.ones((2, 2)))
        with self.assertRaises(TypeError):
            src.bulk_copy_to(HostSparseBuffer())

    def test_release(self):
        buf = _host(np.ones((2, 2)))
        buf.release()
        self.assertEqual(buf.shape, (0, 0))
        self.assertEqual(buf.capacity, 0)


class TestDeviceDenseBuffer(unittest.TestCase):
    def setUp(self):
        self.rt = MirrorRuntime()

    def test_host_device_host_copy_is_bit_identical(self):
        a = np.random.default_rng(0).standard_normal((5, 7)).astype(np.float32)
        host = HostDenseBuffer()
        host.load_host_array(a)
        dev = DeviceDenseBuffer(self.rt, 0)
        host.bulk_copy_to(dev)
        back = HostDenseBuffer()
        dev.bulk_copy_to(back)
        self.assertEqual(back.to_numpy().tobytes(), a.tobytes())
        self.assertEqual(self.rt.h2d, 1)
        self.assertEqual(self.rt.d2h, 1)

    def test_device_buffer_reports_domain(self):
        dev = DeviceDenseBuffer(self.rt, 0)
        self.assertIs(dev.location, Location.DEVICE)
        self.assertEqual(dev.device_index, 0)
        self.assertIs(dev.runtime, self.rt)

    def test_make_buffer(self):
        self.assertIsInstance(make_buffer(MatrixFormat.DENSE, Location.HOST, np.float32), HostDenseBuffer)
        dev = make_buffer(MatrixFormat.DENSE, Location.DEVICE, np.float32, self.rt, 0)
        self.assertIsInstance(dev, DeviceDenseBuffer)
        with self.assertRaises(ValueError):
            make_buffer(MatrixFormat.DENSE, Location.DEVICE, np.float32)
        with self.assertRaises(ValueError):
            make_buffer(MatrixFormat.DENSE, Location.BOTH, np.float32)


class TestDenseBufferContract(unittest.TestCase):
    def test_base_cannot_be_instantiated(self):
        with self.assertRaises(TypeError):
            _dense_buffer._DenseBufferBase()

    def test_variant_missing_hooks_cannot_be_instantiated(self):
        class Partial(_dense_buffer._DenseBufferBase):
            @property
            def _xp(self):
                return np

        with self.assertRaises(TypeError):
            Partial()


if __name__ == "__main__":
    unittest.main()
