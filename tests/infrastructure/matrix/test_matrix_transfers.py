import unittest

import numpy as np

from keymat.domain._errors import InvalidStateError
from keymat.domain._state import Location, MatrixFormat
from keymat.domain.device._device import AUTOPLACEMATRIX, CPUDEVICE, Device
from keymat.infrastructure.arbitration import PlacementPolicy
from keymat.infrastructure.matrix import Matrix

from .._device_test_utils import MirrorRuntime, make_arbitrator

_ARB_LOGGER = "keymat.infrastructure.arbitration._arbitrator"


def _host_matrix(arb, rows=3, cols=4, seed=0):
    rng = np.random.default_rng(seed)
    return Matrix.from_numpy(rng.normal(size=(rows, cols)), device="cpu", dtype=np.float64, arbitrator=arb)


class TestRequire(unittest.TestCase):
    def setUp(self):
        self.runtime = MirrorRuntime()
        self.arb = make_arbitrator(self.runtime)

    def test_require_copies_and_is_idempotent(self):
        m = _host_matrix(self.arb)
        self.assertEqual(m.require("cuda:0"), Device("cuda:0"))
        self.assertIs(m.location, Location.BOTH)
        self.assertEqual(self.runtime.h2d, 1)
        self.assertEqual(m.num_times_device_changed, 1)

        before = (self.runtime.transfers, m.num_times_device_changed, m.num_times_matrix_type_changed)
        m.require("cuda:0")
        m.require("cuda:0")
        after = (self.runtime.transfers, m.num_times_device_changed, m.num_times_matrix_type_changed)
        self.assertEqual(before, after)
        self.assertIs(m.location, Location.BOTH)

    def test_require_does_not_change_preferred_device(self):
        m = _host_matrix(self.arb)
        m.require("cuda:0")
        self.assertEqual(m.preferred_device, Device("cpu"))

    def test_require_format(self):
        m = _host_matrix(self.arb)
        m.require("cpu", matrix_type="sparse")
        self.assertIs(m.matrix_format, MatrixFormat.SPARSE_CSC)
        self.assertIs(m.location, Location.HOST)
        switches = m.num_times_matrix_type_changed
        m.require("cpu", matrix_type="sparse")
        self.assertEqual(m.num_times_matrix_type_changed, switches)

    def test_require_allocates_blank_matrix_of_known_format(self):
        m = Matrix(matrix_type="dense", arbitrator=self.arb)
        m.require("cuda:0")
        self.assertIs(m.location, Location.DEVICE)
        self.assertEqual(m.shape, (0, 0))

    def test_require_on_undetermined_blank_is_noop(self):
        m = Matrix(arbitrator=self.arb)
        m.require("cpu")
        self.assertIs(m.location, Location.UNALLOCATED)


class TestTransfers(unittest.TestCase):
    def setUp(self):
        self.runtime = MirrorRuntime(device_count=2)
        self.arb = make_arbitrator(self.runtime)

    def test_moved_round_trip_is_bit_identical(self):
        m = _host_matrix(self.arb, 5, 7, seed=3)
        original = m.to_numpy()

        m.transfer_from_device_to_device("cpu", "cuda:0", moved=True)
        self.assertIs(m.location, Location.DEVICE)
        self.assertEqual(m.device_id, 0)
        m.transfer_from_device_to_device("cuda:0", "cpu", moved=True)
        self.assertIs(m.location, Location.HOST)
        self.assertEqual(m.device_id, CPUDEVICE)

        np.testing.assert_array_equal(m.to_numpy(), original)
        self.assertEqual((self.runtime.h2d, self.runtime.d2h), (1, 1))
        self.assertEqual(m.num_times_device_changed, 2)

    def test_sparse_round_trip(self):
        m = _host_matrix(self.arb)
        m.switch_to_matrix_type("sparse")
        expected = m.to_numpy()
        m.transfer_from_device_to_device("cpu", "cuda:1", moved=True)
        self.assertEqual(m.device_id, 1)
        m.transfer_from_device_to_device("cuda:1", "cpu", moved=True)
        np.testing.assert_array_equal(m.to_numpy(), expected)

    def test_copy_keeps_source_valid(self):
        m = _host_matrix(self.arb)
        m.transfer_from_device_to_device("cpu", "cuda:0", moved=False)
        self.assertIs(m.location, Location.BOTH)
        self.assertEqual(m.resident_devices(), [Device("cpu"), Device("cuda:0")])
        self.assertEqual(m.device_id, 0)

    def test_empty_transfer_skips_payload(self):
        m = _host_matrix(self.arb)
        m.transfer_from_device_to_device("cpu", "cuda:0", moved=True, empty_transfer=True)
        self.assertIs(m.location, Location.DEVICE)
        self.assertEqual(m.shape, (3, 4))
        self.assertEqual(self.runtime.h2d, 0)
        self.assertEqual(m.num_times_device_changed, 1)

    def test_device_to_device(self):
        m = Matrix.from_numpy(np.ones((2, 2)), device="cuda:0", arbitrator=self.arb)
        m.transfer_from_device_to_device("cuda:0", "cuda:1", moved=True)
        self.assertEqual(m.device_id, 1)
        self.assertEqual(self.runtime.d2d, 1)
        np.testing.assert_array_equal(m.to_numpy(), np.ones((2, 2)))

    def test_update_preferred_device(self):
        m = _host_matrix(self.arb)
        m.transfer_from_device_to_device("cpu", "cuda:0", moved=True)
        self.assertEqual(m.preferred_device, Device("cuda:0"))
        m.transfer_from_device_to_device("cuda:0", "cpu", moved=True, update_preferred_device=False)
        self.assertEqual(m.preferred_device, Device("cuda:0"))

    def test_same_device_is_noop(self):
        m = _host_matrix(self.arb)
        m.transfer_from_device_to_device("cpu", "cpu")
        self.assertEqual(m.num_times_device_changed, 0)
        self.assertEqual(self.runtime.transfers, 0)

    def test_source_must_hold_data(self):
        m = _host_matrix(self.arb)
        with self.assertRaises(InvalidStateError):
            m.transfer_from_device_to_device("cuda:0", "cpu")

    def test_unallocated_transfer_is_noop(self):
        m = Matrix(arbitrator=self.arb)
        m.transfer_from_device_to_device("cpu", "cuda:0")
        self.assertIs(m.location, Location.UNALLOCATED)
        self.assertEqual(m.num_times_device_changed, 0)

    def test_if_not_there(self):
        m = _host_matrix(self.arb)
        m.transfer_to_device_if_not_there("cpu")
        self.assertEqual(self.runtime.transfers, 0)
        m.transfer_to_device_if_not_there("cuda:0", moved=True)
        self.assertIs(m.location, Location.DEVICE)
        m.transfer_to_device_if_not_there("cuda:0", moved=True)
        self.assertEqual(self.runtime.transfers, 1)


class TestAutoPlacement(unittest.TestCase):
    def setUp(self):
        self.runtime = MirrorRuntime()
        self.arb = make_arbitrator(self.runtime)

    def test_auto_resolves_to_best_device(self):
        m = Matrix(2, 2, arbitrator=self.arb)
        self.assertEqual(m.preferred_device, Device("auto"))
        self.assertIs(m.location, Location.DEVICE)

    def test_not_auto_place_skips_auto_matrix(self):
        m = Matrix(2, 2, device="auto", arbitrator=self.arb)
        m.transfer_to_device_if_not_there_and_not_auto_place("cpu")
        self.assertIs(m.location, Location.DEVICE)

    def test_not_auto_place_skips_auto_target(self):
        m = _host_matrix(self.arb)
        m.transfer_to_device_if_not_there_and_not_auto_place(AUTOPLACEMATRIX)
        self.assertIs(m.location, Location.HOST)
        m.transfer_to_device_if_not_there_and_not_auto_place("cuda:0", moved=True)
        self.assertIs(m.location, Location.DEVICE)

    def test_fixed_host_policy(self):
        arb = make_arbitrator(self.runtime, policy=PlacementPolicy.fixed_host())
        self.assertIs(Matrix(2, 2, arbitrator=arb).location, Location.HOST)


class TestUnavailableDevice(unittest.TestCase):
    def setUp(self):
        self.runtime = MirrorRuntime(failing=(0,))
        self.arb = make_arbitrator(self.runtime)

    def test_construction_falls_back_to_host(self):
        with self.assertLogs(_ARB_LOGGER, level="WARNING"):
            m = Matrix(2, 2, device="cuda:0", arbitrator=self.arb)
        self.assertIs(m.location, Location.HOST)
        self.assertEqual(m.device_id, CPUDEVICE)

    def test_transfer_falls_back_to_host(self):
        m = _host_matrix(self.arb)
        with self.assertLogs(_ARB_LOGGER, level="WARNING"):
            m.transfer_to_device_if_not_there("cuda:0", moved=True)
        self.assertIs(m.location, Location.HOST)
        self.assertEqual(self.runtime.transfers, 0)

    def test_probe_failure_is_cached(self):
        Matrix(1, 1, device="cuda:0", arbitrator=self.arb)
        Matrix(1, 1, device="cuda:0", arbitrator=self.arb)
        self.assertEqual(self.runtime.probes, 1)


if __name__ == "__main__":
    unittest.main()
