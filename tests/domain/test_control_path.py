import unittest

from keymat.domain.utils._control_path import create_path_builder


class _Switch:
    def __init__(self, mode):
        self.mode = mode

    def run(self, x):
        """Run the switch."""


class _Other:
    mode = "a"

    def run(self, x):
        """Unrelated class with a same-named method."""


path = create_path_builder("mode")


@path(_Switch, _Switch.run, "a")
def _run_a(self, x):
    return ("a", x)


@path(_Switch, _Switch.run, "b")
def _run_b(self, x):
    return ("b", x * 2)


class _Missing(Exception):
    pass


strict_path = create_path_builder("mode")


class _Strict:
    mode = "z"

    def go(self):
        """Strict dispatch."""


@strict_path(_Strict, _Strict.go, "a", lambda method, current: _Missing(f"{method.__name__}:{current}"))
def _go_a(self):
    return "a"


class TestControlPath(unittest.TestCase):
    def test_dispatches_on_current_state(self):
        self.assertEqual(_Switch("a").run(1), ("a", 1))
        self.assertEqual(_Switch("b").run(3), ("b", 6))

    def test_state_change_changes_path(self):
        s = _Switch("a")
        s.mode = "b"
        self.assertEqual(s.run(2), ("b", 4))

    def test_wrapper_keeps_metadata(self):
        self.assertEqual(_Switch.run.__name__, "run")
        self.assertEqual(_Switch.run.__doc__, "Run the switch.")

    def test_missing_path_default_error(self):
        with self.assertRaises(NotImplementedError):
            _Switch("c").run(1)

    def test_missing_path_custom_error(self):
        with self.assertRaises(_Missing) as cm:
            _Strict().go()
        self.assertIn("go:z", str(cm.exception))

    def test_other_class_untouched(self):
        self.assertIsNone(_Other().run(1))

    def test_unhashable_state_rejected(self):
        with self.assertRaises(TypeError):
            path(_Switch, _Switch.run, ["unhashable"])


if __name__ == "__main__":
    unittest.main()
