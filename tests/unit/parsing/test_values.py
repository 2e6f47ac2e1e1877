"""
Unit tests for quote-aware statement text helpers.

Tests verify:
- quotes_balanced() across quote styles and comments
- split_insert() tuple decomposition
- decode_copy_line() NULL and escape handling
"""

import pytest

from dump_importer.parsing.values import decode_copy_line, quotes_balanced, split_insert


@pytest.mark.unit
class TestQuotesBalanced:
    """Tests for quotes_balanced()."""

    @pytest.mark.parametrize(
        "text",
        [
            "INSERT INTO t VALUES ('a');",
            "INSERT INTO t VALUES ('it''s');",
            "INSERT INTO t VALUES ('it\\'s');",
            "CREATE TABLE `t` (`a` INT);",
            "-- don't count this\nSELECT 1;",
            "/* it's a comment */ SELECT 1;",
        ],
    )
    def test_balanced(self, text):
        assert quotes_balanced(text)

    @pytest.mark.parametrize(
        "text",
        [
            "INSERT INTO t VALUES ('a;\n",
            "INSERT INTO t VALUES ('a\\');",
            "/* open comment; \n",
        ],
    )
    def test_unbalanced(self, text):
        assert not quotes_balanced(text)

    def test_backslash_is_literal_without_escapes(self):
        """PostgreSQL strings treat backslash as an ordinary character."""
        assert quotes_balanced("INSERT INTO t VALUES ('a\\');", backslash_escapes=False)

    def test_hash_comments(self):
        """MySQL '#' comments hide apostrophes only when enabled."""
        text = "# it's a comment\nSELECT 1;"

        assert quotes_balanced(text, hash_comments=True)
        assert not quotes_balanced(text, hash_comments=False)


@pytest.mark.unit
class TestSplitInsert:
    """Tests for split_insert()."""

    def test_splits_tuples(self):
        prefix, tuples = split_insert("INSERT INTO `t` VALUES (1,'a'),(2,'b, c'),(3,'(x)');")

        assert prefix == "INSERT INTO `t` VALUES"
        assert tuples == ["(1,'a')", "(2,'b, c')", "(3,'(x)')"]

    def test_keeps_column_list_in_prefix(self):
        prefix, tuples = split_insert("INSERT INTO t (id, name) VALUES (1,'values')")

        assert prefix == "INSERT INTO t (id, name) VALUES"
        assert tuples == ["(1,'values')"]

    def test_unterminated_last_tuple_is_kept(self):
        _, tuples = split_insert("INSERT INTO t VALUES (1,'a'),(2,'b';")

        assert tuples[0] == "(1,'a')"
        assert tuples[1].startswith("(2,'b'")

    def test_not_an_insert(self):
        assert split_insert("CREATE TABLE t (id INT);") is None
        assert split_insert("INSERT INTO t SELECT * FROM u;") is None


@pytest.mark.unit
class TestDecodeCopyLine:
    """Tests for decode_copy_line()."""

    def test_null_and_plain_fields(self):
        assert decode_copy_line("1\t\\N\tabc\n") == ["1", None, "abc"]

    def test_escapes(self):
        assert decode_copy_line("a\\tb\tline\\nbreak\tback\\\\slash\n") == ["a\tb", "line\nbreak", "back\\slash"]

    def test_octal_and_hex_escapes(self):
        assert decode_copy_line("\\101\t\\x42\n") == ["A", "B"]

    def test_empty_string_is_not_null(self):
        assert decode_copy_line("\t\\N\n") == ["", None]
