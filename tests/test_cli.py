import contextlib
import io
import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from squeeze_sync import __version__
from squeeze_sync.cli import build_filters, create_parser, main
from squeeze_sync.errors import FatalError
from squeeze_sync.log import SyncLogger


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _run(argv, answer: str = "y"):
    out = io.StringIO()
    err = io.StringIO()
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        code = main(argv, input_func=lambda _prompt: answer)
    return code, out.getvalue(), err.getvalue()


class TestMain(unittest.TestCase):

    def test_sync_with_assume_yes(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_file(root / "src" / "a" / "file.txt", b"hello")
            (root / "dst").mkdir()

            code, out, _ = _run(["-y", str(root / "src"), str(root / "dst")])

            self.assertEqual(code, 0)
            self.assertEqual((root / "dst" / "a" / "file.txt").read_bytes(), b"hello")
            self.assertIn("Syncing 'a/file.txt'", out)

    def test_declined_confirmation(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_file(root / "src" / "f", b"F")
            (root / "dst").mkdir()

            code, out, _ = _run([str(root / "src"), str(root / "dst")], answer="n")

            self.assertEqual(code, 0)
            self.assertIn("From: ", out)
            self.assertFalse((root / "dst" / "f").exists())

    def test_empty_answer_continues(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_file(root / "src" / "f", b"F")
            (root / "dst").mkdir()

            code, _, _ = _run([str(root / "src"), str(root / "dst")], answer="")

            self.assertEqual(code, 0)
            self.assertEqual((root / "dst" / "f").read_bytes(), b"F")

    def test_missing_operands_prints_help(self) -> None:
        code, out, _ = _run([])
        self.assertEqual(code, 0)
        self.assertIn("usage: sqsync", out)

    def test_bad_source_is_fatal(self) -> None:
        with TemporaryDirectory() as td:
            code, _, err = _run(["-y", str(Path(td) / "missing"), td])
            self.assertEqual(code, 1)
            self.assertIn("must be a directory", err)

    def test_invalid_filter_is_fatal(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            (root / "src").mkdir()
            (root / "dst").mkdir()
            code, _, err = _run(["-y", "--filter", "rx:([", str(root / "src"), str(root / "dst")])
            self.assertEqual(code, 1)
            self.assertIn("is not valid", err)

    def test_quiet_dry_run_with_stats(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_file(root / "src" / "f", b"F")
            (root / "dst").mkdir()

            code, out, _ = _run(["-yqt", "--stats", str(root / "src"), str(root / "dst")])

            self.assertEqual(code, 0)
            self.assertNotIn("Syncing", out)
            self.assertIn("SYNC STATISTICS", out)
            self.assertFalse((root / "dst" / "f").exists())

    def test_log_file(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            (root / "src").mkdir()
            (root / "dst").mkdir()
            (root / "logs").mkdir()

            code, _, _ = _run(["-yq", "--log", str(root / "logs"), str(root / "src"), str(root / "dst")])

            self.assertEqual(code, 0)
            self.assertIn("Sync from", (root / "logs" / "sqsync.log").read_text(encoding="utf-8"))

    def test_compress_choice(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_file(root / "src" / "big", b"z" * 4096)
            (root / "dst").mkdir()

            code, _, _ = _run(["-yqc", "--compress-choice", "zlib", str(root / "src"), str(root / "dst")])

            self.assertEqual(code, 0)
            self.assertEqual((root / "dst" / "big").read_bytes()[:4], b"SQZ\x00")
            self.assertLess(os.path.getsize(root / "dst" / "big"), 4096)

    def test_version(self) -> None:
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            with self.assertRaises(SystemExit) as ctx:
                create_parser().parse_args(["--version"])
        self.assertEqual(ctx.exception.code, 0)
        self.assertIn(__version__, out.getvalue())


class TestBuildFilters(unittest.TestCase):

    def test_regex_and_file_values(self) -> None:
        with TemporaryDirectory() as td:
            path = Path(td) / "exclude.txt"
            path.write_text("**/build/**\n", encoding="utf-8")
            log = SyncLogger(stdout=io.StringIO(), stderr=io.StringIO())

            filters = build_filters([r"rx:\.o$", str(path)], log)

            self.assertEqual(len(filters), 2)
            self.assertTrue(filters.is_excluded("x/build/y"))
            self.assertTrue(filters.is_excluded("main.o"))
            log.close()

    def test_missing_file_is_fatal(self) -> None:
        with TemporaryDirectory() as td:
            log = SyncLogger(stdout=io.StringIO(), stderr=io.StringIO())
            with self.assertRaises(FatalError):
                build_filters([str(Path(td) / "none.txt")], log)
            log.close()


if __name__ == '__main__':
    unittest.main()
