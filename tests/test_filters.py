import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from squeeze_sync.errors import FilterFileError, InvalidPatternError
from squeeze_sync.filters import FilterSet, compile_pattern, glob_to_regex, read_filter_lines


class TestGlobTranslation(unittest.TestCase):

    def test_node_modules_anywhere(self) -> None:
        filters = FilterSet(["**/node_modules/**"])
        self.assertTrue(filters.is_excluded("a/node_modules/x"))
        self.assertTrue(filters.is_excluded("node_modules"))
        self.assertTrue(filters.is_excluded("a/b/node_modules"))
        self.assertFalse(filters.is_excluded("a/node_modules_other/x"))
        self.assertFalse(filters.is_excluded("a/my_node_modules/x"))

    def test_translation_text(self) -> None:
        self.assertEqual(glob_to_regex("**/node_modules/**"), "^(.+($|/))?node_modules(/.+)?(/|$)")
        self.assertEqual(glob_to_regex("*.tmp"), r"(^|/)([^/]+)?\.tmp(/|$)")
        self.assertEqual(glob_to_regex("a/b"), "(^|/)a/b(/|$)")

    def test_single_star_stays_in_component(self) -> None:
        pattern = compile_pattern("*.tmp")
        self.assertTrue(pattern.search("a.tmp"))
        self.assertFalse(pattern.search("a.tmp.txt"))
        self.assertFalse(pattern.search("a.tmp.d/notes"))

        pattern = compile_pattern("logs/*.log")
        self.assertTrue(pattern.search("logs/today.log"))
        self.assertFalse(pattern.search("logs/old/today.log"))

    def test_double_star_crosses_components(self) -> None:
        pattern = compile_pattern("build/**")
        self.assertTrue(pattern.search("build"))
        self.assertTrue(pattern.search("build/a/b/c.o"))
        self.assertFalse(pattern.search("rebuild/a"))

    def test_directory_glob_excludes_descendants(self) -> None:
        filters = FilterSet(["cache"])
        self.assertTrue(filters.is_excluded("cache"))
        self.assertTrue(filters.is_excluded("cache/x/y"))
        self.assertFalse(filters.is_excluded("cached"))
        self.assertFalse(filters.is_excluded("a/mycache"))

    def test_globs_match_at_any_depth(self) -> None:
        filters = FilterSet(["*.tmp", "build"])
        self.assertTrue(filters.is_excluded("a/x.tmp"))
        self.assertTrue(filters.is_excluded("a/b/c/x.tmp"))
        self.assertTrue(filters.is_excluded("a/build"))
        self.assertTrue(filters.is_excluded("a/build/o"))
        self.assertFalse(filters.is_excluded("a/rebuild/o"))
        self.assertFalse(filters.is_excluded("a/x.tmpl"))

    def test_multi_component_glob_at_any_depth(self) -> None:
        pattern = compile_pattern("logs/*.log")
        self.assertTrue(pattern.search("var/logs/today.log"))
        self.assertFalse(pattern.search("var/oldlogs/today.log"))

    def test_literal_characters_are_escaped(self) -> None:
        pattern = compile_pattern("a.b+c")
        self.assertTrue(pattern.search("a.b+c"))
        self.assertFalse(pattern.search("axbbc"))


class TestRegexPatterns(unittest.TestCase):

    def test_regex_prefix_uses_search(self) -> None:
        pattern = compile_pattern(r"rx:\.tmp$")
        self.assertTrue(pattern.search("deep/dir/file.tmp"))
        self.assertFalse(pattern.search("file.tmp.txt"))

    def test_invalid_regex_raises(self) -> None:
        with self.assertRaises(InvalidPatternError):
            compile_pattern("rx:([unclosed")

    def test_surrounding_whitespace_is_ignored(self) -> None:
        pattern = compile_pattern("  rx:^skip  ")
        self.assertEqual(pattern.pattern, "^skip")


class TestFilterSet(unittest.TestCase):

    def test_empty_set_excludes_nothing(self) -> None:
        filters = FilterSet()
        self.assertEqual(len(filters), 0)
        self.assertFalse(filters.is_excluded("anything"))

    def test_exclude_subtree_keeps_the_directory(self) -> None:
        filters = FilterSet()
        filters.exclude_subtree("a/b.c")
        self.assertFalse(filters.is_excluded("a/b.c"))
        self.assertTrue(filters.is_excluded("a/b.c/d"))
        self.assertFalse(filters.is_excluded("a/bxc/d"))

    def test_filter_file(self) -> None:
        with TemporaryDirectory() as td:
            path = Path(td) / "filters.txt"
            path.write_text("# comment\n\n**/node_modules/**\nrx:\\.bak$\n", encoding="utf-8")

            self.assertEqual(read_filter_lines(str(path)), ["**/node_modules/**", "rx:\\.bak$"])

            filters = FilterSet()
            self.assertEqual(filters.add_file(str(path)), 2)
            self.assertTrue(filters.is_excluded("x/node_modules/y"))
            self.assertTrue(filters.is_excluded("notes.bak"))
            self.assertFalse(filters.is_excluded("notes.txt"))

    def test_missing_filter_file(self) -> None:
        with TemporaryDirectory() as td:
            with self.assertRaises(FilterFileError):
                FilterSet.from_file(str(Path(td) / "missing.txt"))


if __name__ == '__main__':
    unittest.main()
