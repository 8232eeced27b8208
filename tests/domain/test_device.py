import unittest

from keymat.domain.device._device import AUTOPLACEMATRIX, CPUDEVICE, Device
from keymat.domain.device._device_protocol import DeviceLike


class TestDevice(unittest.TestCase):
    def test_parse_strings(self):
        self.assertTrue(Device("cpu").is_cpu())
        self.assertTrue(Device("auto").is_auto())
        d = Device("cuda:2")
        self.assertTrue(d.is_cuda())
        self.assertEqual(d.index, 2)
        self.assertEqual(str(d), "cuda:2")

    def test_invalid_string_raises(self):
        for bad in ("gpu", "cuda", "cuda:-1", "CPU", ""):
            with self.assertRaises(ValueError):
                Device(bad)

    def test_numeric_ids(self):
        self.assertEqual(Device("cpu").id, CPUDEVICE)
        self.assertEqual(Device("auto").id, AUTOPLACEMATRIX)
        self.assertEqual(Device("cuda:3").id, 3)
        self.assertEqual(Device.from_id(-7), Device("cpu"))
        self.assertEqual(Device.from_id(AUTOPLACEMATRIX), Device("auto"))
        self.assertEqual(Device.from_id(1), Device("cuda:1"))

    def test_coerce(self):
        self.assertEqual(Device.coerce(None), Device("auto"))
        self.assertEqual(Device.coerce(0), Device("cuda:0"))
        self.assertEqual(Device.coerce("cpu"), Device("cpu"))
        d = Device("cuda:1")
        self.assertIs(Device.coerce(d), d)
        with self.assertRaises(TypeError):
            Device.coerce(True)
        with self.assertRaises(TypeError):
            Device.coerce(1.5)

    def test_equality_and_hash(self):
        self.assertEqual(Device("cuda:0"), Device("cuda:0"))
        self.assertNotEqual(Device("cuda:0"), Device("cuda:1"))
        self.assertEqual(len({Device("cpu"), Device("cpu"), Device("auto")}), 2)

    def test_satisfies_protocol(self):
        self.assertIsInstance(Device("cpu"), DeviceLike)

    def test_coerce_accepts_device_like_objects(self):
        class ForeignDevice:
            type = "cuda"
            index = 2
            id = 2

            def is_cpu(self):
                return False

            def is_cuda(self):
                return True

            def is_auto(self):
                return False

            def __str__(self):
                return "cuda:2"

        self.assertEqual(Device.coerce(ForeignDevice()), Device("cuda:2"))
        with self.assertRaises(TypeError):
            Device.coerce(2.5)


if __name__ == "__main__":
    unittest.main()
