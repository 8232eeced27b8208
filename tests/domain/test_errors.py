import unittest

from keymat.domain._errors import (
    CapacityExceededError,
    DeviceUnavailableError,
    InvalidStateError,
    MatrixError,
    MatrixTypeNotSupportedError,
    SerializationNameMismatchError,
    ShapeMismatchError,
    ViewInvalidatedError,
)


class TestErrors(unittest.TestCase):
    def test_shape_mismatch_fields_and_message(self):
        e = ShapeMismatchError("reshape", (12,), (10,))
        self.assertEqual(e.op, "reshape")
        self.assertEqual(e.expected, (12,))
        self.assertEqual(e.actual, (10,))
        self.assertIn("reshape", str(e))

        e2 = ShapeMismatchError("verify_size", (3, 4), (4, 3))
        self.assertIn("3 x 4", str(e2))
        self.assertIn("4 x 3", str(e2))

    def test_view_invalidated_is_invalid_state(self):
        e = ViewInvalidatedError("column_slice", 1, 3)
        self.assertIsInstance(e, InvalidStateError)
        self.assertEqual((e.created_at, e.current), (1, 3))

    def test_all_errors_share_a_base(self):
        errors = [
            ShapeMismatchError("x", (1,), (2,)),
            InvalidStateError("x", "why"),
            DeviceUnavailableError(0, "offline"),
            SerializationNameMismatchError("W", "b"),
            CapacityExceededError(11, 10),
            MatrixTypeNotSupportedError("fill", "sparse"),
        ]
        for e in errors:
            self.assertIsInstance(e, MatrixError)
            self.assertIsInstance(e, RuntimeError)

    def test_structured_fields(self):
        self.assertEqual(DeviceUnavailableError(2, "gone").device_index, 2)
        e = SerializationNameMismatchError("W", None)
        self.assertIsNone(e.actual)
        self.assertIn("'W'", str(e))
        c = CapacityExceededError(11, 10)
        self.assertEqual((c.required, c.capacity), (11, 10))


if __name__ == "__main__":
    unittest.main()
