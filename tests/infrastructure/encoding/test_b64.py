import unittest

import numpy as np

from keymat.infrastructure.encoding import (
    b64_str_to_bytes,
    bytes_to_b64_str,
    ndarray_to_payload,
    payload_to_ndarray,
)


class TestB64Payloads(unittest.TestCase):
    def test_bytes(self):
        s = bytes_to_b64_str(b"\x00\x01keymat")
        self.assertIsInstance(s, str)
        self.assertEqual(b64_str_to_bytes(s), b"\x00\x01keymat")

    def test_fortran_order_payload(self):
        a = np.arange(6, dtype=np.float32).reshape(2, 3)
        payload = ndarray_to_payload(a, order="F")
        self.assertEqual(payload["order"], "F")
        self.assertEqual(payload["shape"], [2, 3])
        self.assertEqual(np.frombuffer(b64_str_to_bytes(payload["b64"]), dtype=np.float32)[1], 3.0)
        out = payload_to_ndarray(payload)
        np.testing.assert_array_equal(out, a)
        self.assertTrue(out.flags["F_CONTIGUOUS"])
        self.assertTrue(out.flags["OWNDATA"])

    def test_payload_without_order_is_c(self):
        a = np.arange(4, dtype=np.int32).reshape(2, 2)
        payload = ndarray_to_payload(a)
        del payload["order"]
        np.testing.assert_array_equal(payload_to_ndarray(payload), a)

    def test_invalid_order(self):
        with self.assertRaises(ValueError):
            ndarray_to_payload(np.zeros(2), order="K")


if __name__ == "__main__":
    unittest.main()
