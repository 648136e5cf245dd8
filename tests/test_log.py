import io
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from squeeze_sync.config import Config
from squeeze_sync.errors import ConfigurationError, FatalError, FileIOError
from squeeze_sync.log import LogLevel, SyncLogger


class TestSyncLogger(unittest.TestCase):

    def setUp(self) -> None:
        self.out = io.StringIO()
        self.err = io.StringIO()
        self.log = SyncLogger(stdout=self.out, stderr=self.err)

    def tearDown(self) -> None:
        self.log.close()

    def test_levels_are_routed_and_prefixed(self) -> None:
        self.log.write("Checking '%s'", "a.txt")
        self.log.write("careful", level=LogLevel.WARNING)
        self.log.write("Failed to copy '%s'.", "b.txt", level=LogLevel.ERROR)

        self.assertEqual(self.out.getvalue(), "Checking 'a.txt'\n")
        self.assertEqual(self.err.getvalue(), "\tW: careful\n\tE: Failed to copy 'b.txt'.\n")
        self.assertEqual(self.log.warnings, 1)
        self.assertEqual(self.log.errors, 1)

    def test_quiet_hides_verbose_only(self) -> None:
        self.log.set_quiet(True)
        self.log.verbose("hidden")
        self.log.error("shown")
        self.assertEqual(self.out.getvalue(), "")
        self.assertIn("shown", self.err.getvalue())

    def test_fatal_raises(self) -> None:
        with self.assertRaises(FatalError) as ctx:
            self.log.fatal("Source '%s' must be a directory.", "/nope")
        self.assertEqual(str(ctx.exception), "Source '/nope' must be a directory.")
        self.assertEqual(self.log.errors, 1)

    def test_write_exception_includes_location(self) -> None:
        try:
            raise FileIOError("Cannot open file x")
        except FileIOError as e:
            self.log.write_exception(e)

        text = self.err.getvalue()
        self.assertTrue(text.startswith("\tE: Cannot open file x\n\t"))
        self.assertIn("test_log.py:", text)

    def test_reset_counters(self) -> None:
        self.log.warning("w")
        self.log.reset_counters()
        self.assertEqual(self.log.warnings, 0)


class TestLogFile(unittest.TestCase):

    def test_directory_gets_default_name(self) -> None:
        with TemporaryDirectory() as td:
            log = SyncLogger(stdout=io.StringIO(), stderr=io.StringIO())
            path = log.set_log_path(td)
            log.write("into the file")
            log.write("problem", level=LogLevel.ERROR)
            log.close()

            self.assertEqual(path, str(Path(td) / Config.LOG_FILE_NAME))
            text = Path(path).read_text(encoding="utf-8")
            self.assertIn(" - INFO - into the file", text)
            self.assertIn("\tE: ", text)
            self.assertIn("problem", text)

    def test_unwritable_path(self) -> None:
        with TemporaryDirectory() as td:
            log = SyncLogger(stdout=io.StringIO(), stderr=io.StringIO())
            with self.assertRaises(ConfigurationError):
                log.set_log_path(str(Path(td) / "missing" / "sync.log"))
            log.close()


if __name__ == '__main__':
    unittest.main()
