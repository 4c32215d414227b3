import os
import tempfile
import unittest
from pathlib import Path

from satchel.errors import TraversalGuardError
from satchel.pathutil import child_name, norm_path, resolve_under, root_base
from satchel.walk import walk_root


class NormPathTests(unittest.TestCase):
    def test_canonical_forms(self):
        self.assertEqual(norm_path("a/b/c"), "a/b/c")
        self.assertEqual(norm_path("/a//b/./c/"), "a/b/c")
        self.assertEqual(norm_path("a" + os.sep + "b"), "a/b")
        self.assertEqual(norm_path("./"), "")

    def test_parent_segments_rejected(self):
        for p in ("..", "../a", "a/../b", "a/.."):
            with self.subTest(p=p):
                with self.assertRaises(ValueError):
                    norm_path(p)

    @unittest.skipIf(os.sep == "\\" or os.altsep == "\\", "backslash is a path separator here")
    def test_backslash_is_an_ordinary_character(self):
        self.assertEqual(norm_path("a\\b/c\\d"), "a\\b/c\\d")
        with self.assertRaises(ValueError):
            norm_path("a\\b/../c")

    def test_dotted_names_are_not_parents(self):
        self.assertEqual(norm_path("a/..b/c.."), "a/..b/c..")


class NamingTests(unittest.TestCase):
    def test_root_base(self):
        self.assertEqual(root_base("/home/user/project"), "project")
        self.assertEqual(root_base("/"), "")

    def test_child_name(self):
        self.assertEqual(child_name("root", "a.txt"), "root/a.txt")
        self.assertEqual(child_name("", "etc"), "etc")


class ResolveUnderTests(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.target = os.path.realpath(tmp.name)

    def test_plain_names_join(self):
        self.assertEqual(resolve_under(self.target, "a/b.txt"), os.path.join(self.target, "a", "b.txt"))
        self.assertEqual(resolve_under(self.target, "./a//b.txt/"), os.path.join(self.target, "a", "b.txt"))

    def test_absolute_names_are_made_relative(self):
        self.assertEqual(resolve_under(self.target, "/etc/passwd"), os.path.join(self.target, "etc", "passwd"))

    def test_empty_name_is_target(self):
        self.assertEqual(resolve_under(self.target, "."), self.target)

    def test_parent_segments_raise(self):
        for name in ("../x", "a/../../x", ".."):
            with self.subTest(name=name):
                with self.assertRaises(TraversalGuardError) as cm:
                    resolve_under(self.target, name)
                self.assertIn("outside destination", str(cm.exception))

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks unavailable")
    def test_symlink_escape_raises(self):
        outside = tempfile.TemporaryDirectory()
        self.addCleanup(outside.cleanup)
        os.symlink(outside.name, os.path.join(self.target, "link"))
        with self.assertRaises(TraversalGuardError):
            resolve_under(self.target, "link/x.txt")

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks unavailable")
    def test_symlink_inside_target_is_allowed(self):
        os.mkdir(os.path.join(self.target, "real"))
        os.symlink("real", os.path.join(self.target, "alias"))
        self.assertEqual(resolve_under(self.target, "alias/x"), os.path.join(self.target, "alias", "x"))


class WalkTests(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.root = Path(tmp.name) / "top"
        for rel in ("b/y.txt", "b/x.txt", "a.txt", "c/d/e.txt"):
            p = self.root / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(rel)

    def test_preorder_sorted_siblings(self):
        nodes = list(walk_root(str(self.root), os.stat(self.root)))
        self.assertEqual(
            [n.name for n in nodes],
            ["top", "top/a.txt", "top/b", "top/b/x.txt", "top/b/y.txt", "top/c", "top/c/d", "top/c/d/e.txt"],
        )
        self.assertTrue(all(n.error is None and n.st is not None for n in nodes))
        self.assertEqual(nodes[1].path, str(self.root / "a.txt"))

    def test_file_root(self):
        f = self.root / "a.txt"
        nodes = list(walk_root(str(f), os.stat(f)))
        self.assertEqual([n.name for n in nodes], ["a.txt"])

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks unavailable")
    def test_symlinked_directories_are_not_followed(self):
        os.symlink(str(self.root / "c"), self.root / "link")
        names = [n.name for n in walk_root(str(self.root), os.stat(self.root))]
        self.assertIn("top/link", names)
        self.assertNotIn("top/link/d", names)

    @unittest.skipIf(not hasattr(os, "geteuid") or os.geteuid() == 0, "permission bits do not bind root")
    def test_unlistable_directory_reports_error(self):
        locked = self.root / "b"
        os.chmod(locked, 0)
        self.addCleanup(os.chmod, locked, 0o755)
        nodes = list(walk_root(str(self.root), os.stat(self.root)))
        errors = [n for n in nodes if n.error is not None]
        self.assertEqual([n.name for n in errors], ["top/b"])
        self.assertIn("top/c/d/e.txt", [n.name for n in nodes])


if __name__ == "__main__":
    unittest.main()
