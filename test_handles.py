import unittest

from satchel.errors import ArchiveIOError, FormatError
from satchel.handles import HandleStack


class HandleStackTests(unittest.TestCase):
    def test_closes_in_reverse_order(self):
        order = []
        hs = HandleStack()
        for name in ("file", "gzip", "tar"):
            hs.push(name, "/x", lambda n=name: order.append(n))
        self.assertIsNone(hs.close_all())
        self.assertEqual(order, ["tar", "gzip", "file"])

    def test_first_close_error_wins_and_all_closers_run(self):
        order = []

        def failing(n, exc):
            def _close():
                order.append(n)
                raise exc

            return _close

        hs = HandleStack()
        hs.push("file", "/a", failing("file", OSError(5, "Input/output error")))
        hs.push("gzip", "/a", failing("gzip", ValueError("bad")))
        hs.push("tar", "/a", lambda: order.append("tar"))
        err = hs.close_all()
        self.assertEqual(order, ["tar", "gzip", "file"])
        self.assertIsInstance(err, ArchiveIOError)
        self.assertIn("failed to close gzip", str(err))

    def test_satchel_errors_pass_through(self):
        hs = HandleStack()
        boom = FormatError("sealed stream truncated")

        def _close():
            raise boom

        hs.push("encryption reader", None, _close)
        self.assertIs(hs.close_all(), boom)

    def test_close_error_raised_from_clean_block(self):
        def _close():
            raise OSError(28, "No space left on device")

        with self.assertRaises(ArchiveIOError) as cm:
            with HandleStack() as hs:
                hs.push("archive file", "/out.tar", _close)
        self.assertIn("No space left on device", str(cm.exception))

    def test_error_in_flight_wins_over_close_error(self):
        closed = []

        def _close():
            closed.append(True)
            raise OSError(5, "Input/output error")

        with self.assertRaises(KeyError):
            with HandleStack() as hs:
                hs.push("file", "/in", _close)
                raise KeyError("primary")
        self.assertEqual(closed, [True])

    def test_close_all_is_idempotent(self):
        calls = []
        hs = HandleStack()
        hs.push("file", None, lambda: calls.append(1))
        hs.close_all()
        hs.close_all()
        self.assertEqual(calls, [1])


if __name__ == "__main__":
    unittest.main()
