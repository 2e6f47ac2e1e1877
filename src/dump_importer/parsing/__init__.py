"""Dump statement parsing on top of sqlglot."""

from dump_importer.parsing.adapter import DumpStatementParser, statement_kind
from dump_importer.parsing.translator import StatementTranslator

__all__ = ["DumpStatementParser", "StatementTranslator", "statement_kind"]
