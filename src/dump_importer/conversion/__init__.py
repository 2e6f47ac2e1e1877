"""Source schema building, schema conversion and row conversion."""

from dump_importer.conversion.row_converter import RowConverter
from dump_importer.conversion.schema_builder import SchemaBuilder
from dump_importer.conversion.schema_converter import SchemaConverter

__all__ = ["RowConverter", "SchemaBuilder", "SchemaConverter"]
