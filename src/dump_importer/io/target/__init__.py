"""Target store collaborators."""

from dump_importer.io.target.base import Mutation, SchemaApplier, TargetStore
from dump_importer.io.target.memory import InMemoryStore
from dump_importer.io.target.sqlalchemy_store import SqlAlchemyStore

__all__ = ["Mutation", "SchemaApplier", "TargetStore", "InMemoryStore", "SqlAlchemyStore"]
