"""
dump-importer - Relational dump ingestion and conversion engine.

Reads MySQL or PostgreSQL dump files, rebuilds the source schema, converts it
to a target schema for a distributed store and streams the dump's rows into
size-bounded write batches.
"""

__version__ = "0.1.0"
