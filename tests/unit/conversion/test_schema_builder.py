"""
Unit tests for the source schema builder.

Tests verify:
- Tables, columns and keys get fresh ids and PK columns become NOT NULL
- Repeated primary key declarations keep the last one
- Unique columns and table constraints become named indexes
- Foreign keys resolve forward references at finalize()
- Unknown tables and dangling references are counted, never fatal
- Session time zone capture and check expression normalization
"""

import pytest

from dump_importer.conversion.schema_builder import normalize_check_expression
from dump_importer.domain.issues import IssueKind
from dump_importer.domain.source_schema import AutoGenStrategy


@pytest.mark.unit
class TestMySQLSchemaPass:
    """Schema pass over mysqldump text."""

    def test_table_columns_and_primary_key(self, build_schema, mysql_dialect):
        ctx = build_schema(
            "CREATE TABLE `users` (\n"
            "  `id` int AUTO_INCREMENT PRIMARY KEY,\n"
            "  `email` varchar(100) NOT NULL UNIQUE,\n"
            "  `bio` text\n"
            ");\n",
            mysql_dialect,
        )

        users = ctx.source.table_by_name("users")
        assert ctx.source.frozen
        assert [c.name for c in users.ordered_columns()] == ["id", "email", "bio"]
        id_col = users.column_by_name("id")
        assert id_col.not_null
        assert id_col.auto_gen.strategy == AutoGenStrategy.SEQUENCE
        assert [k.column_id for k in users.primary_keys] == [id_col.id]
        (unique,) = users.indexes
        assert unique.name == "users_email_key"
        assert unique.unique
        assert len({users.id, *users.column_ids}) == 4

    def test_last_primary_key_wins(self, build_schema, mysql_dialect):
        ctx = build_schema(
            "CREATE TABLE `t` (`a` int PRIMARY KEY, `b` int);\n"
            "ALTER TABLE `t` ADD PRIMARY KEY (`b`);\n",
            mysql_dialect,
        )

        table = ctx.source.table_by_name("t")
        b = table.column_by_name("b")
        assert [k.column_id for k in table.primary_keys] == [b.id]
        assert b.not_null

    def test_table_level_keys(self, build_schema, mysql_dialect):
        ctx = build_schema(
            "CREATE TABLE `orders` (\n"
            "  `id` int NOT NULL,\n"
            "  `code` varchar(10),\n"
            "  `user_id` int,\n"
            "  `notes` text,\n"
            "  PRIMARY KEY (`id`),\n"
            "  UNIQUE KEY `orders_code_uq` (`code`),\n"
            "  KEY `orders_user_idx` (`user_id`),\n"
            "  FULLTEXT KEY `orders_notes_ft` (`notes`)\n"
            ");\n",
            mysql_dialect,
        )

        orders = ctx.source.table_by_name("orders")
        assert {i.name: i.unique for i in orders.indexes} == {"orders_code_uq": True, "orders_user_idx": False}
        dropped = [i for i in ctx.issues.for_table(orders.id) if i.kind == IssueKind.INDEX_DROPPED]
        assert len(dropped) == 1
        assert "orders_notes_ft" in dropped[0].detail

    def test_spatial_and_fulltext_indexes_are_dropped(self, build_schema, mysql_dialect):
        """Neither inline nor standalone SPATIAL/FULLTEXT indexes become plain indexes."""
        ctx = build_schema(
            "CREATE TABLE `places` (\n"
            "  `id` int NOT NULL,\n"
            "  `g` point NOT NULL /*!80003 SRID 4326 */,\n"
            "  `name` varchar(20),\n"
            "  PRIMARY KEY (`id`),\n"
            "  SPATIAL KEY `places_g_sp` (`g`),\n"
            "  KEY `places_name_idx` (`name`)\n"
            ");\n"
            "CREATE SPATIAL INDEX `places_g_sp2` ON `places` (`g`);\n"
            "CREATE FULLTEXT INDEX `places_name_ft` ON `places` (`name`);\n",
            mysql_dialect,
        )

        places = ctx.source.table_by_name("places")
        assert [i.name for i in places.indexes] == ["places_name_idx"]
        dropped = sorted(i.detail for i in ctx.issues.for_table(places.id) if i.kind == IssueKind.INDEX_DROPPED)
        assert dropped == ["FULLTEXT places_name_ft", "SPATIAL places_g_sp", "SPATIAL places_g_sp2"]

    def test_foreign_key_forward_reference(self, build_schema, mysql_dialect):
        """A reference to a table created later resolves at the end of the pass."""
        ctx = build_schema(
            "CREATE TABLE `orders` (\n"
            "  `id` int PRIMARY KEY,\n"
            "  `user_id` int,\n"
            "  CONSTRAINT `fk_user` FOREIGN KEY (`user_id`) REFERENCES `users` (`id`) ON DELETE CASCADE\n"
            ");\n"
            "CREATE TABLE `users` (`id` int PRIMARY KEY);\n",
            mysql_dialect,
        )

        orders = ctx.source.table_by_name("orders")
        users = ctx.source.table_by_name("users")
        (fk,) = orders.foreign_keys
        assert fk.name == "fk_user"
        assert fk.refer_table_id == users.id
        assert fk.column_ids == [orders.column_by_name("user_id").id]
        assert fk.refer_column_ids == [users.column_by_name("id").id]
        assert fk.on_delete == "CASCADE"

    def test_foreign_key_to_unknown_table_is_dropped(self, build_schema, mysql_dialect):
        ctx = build_schema(
            "CREATE TABLE `orders` (\n"
            "  `id` int PRIMARY KEY,\n"
            "  `user_id` int,\n"
            "  FOREIGN KEY (`user_id`) REFERENCES `ghosts` (`id`)\n"
            ");\n",
            mysql_dialect,
        )

        assert ctx.source.table_by_name("orders").foreign_keys == []
        assert any("ghosts" in message for message in ctx.stats.unexpected)

    def test_alter_on_unknown_table_is_skipped(self, build_schema, mysql_dialect):
        ctx = build_schema("ALTER TABLE `missing` ADD PRIMARY KEY (`id`);\n", mysql_dialect)

        assert ctx.stats.skipped["alter_table_unknown_table"] == 1
        assert ctx.source.tables == {}

    def test_duplicate_table_is_unexpected(self, build_schema, mysql_dialect):
        ctx = build_schema("CREATE TABLE `t` (`a` int);\nCREATE TABLE `t` (`b` int);\n", mysql_dialect)

        table = ctx.source.table_by_name("t")
        assert [c.name for c in table.ordered_columns()] == ["a"]
        assert ctx.stats.unexpected["Duplicate CREATE TABLE for t"] == 1

    def test_time_zone_and_row_counts(self, build_schema, mysql_dialect):
        """The schema pass records the session time zone and counts insert rows."""
        ctx = build_schema(
            "/*!40103 SET TIME_ZONE='+02:00' */;\n"
            "CREATE TABLE `t` (`a` int);\n"
            "INSERT INTO `t` VALUES (1),(2),(3);\n",
            mysql_dialect,
        )

        assert ctx.timezone_offset == "+02:00"
        assert ctx.stats.rows["t"] == 3
        assert ctx.stats.statements["insert"] == 1

    def test_uuid_default(self, build_schema, mysql_dialect):
        ctx = build_schema("CREATE TABLE `t` (`id` varchar(36) NOT NULL DEFAULT (uuid()));\n", mysql_dialect)

        column = ctx.source.table_by_name("t").column_by_name("id")
        assert column.auto_gen.strategy == AutoGenStrategy.PRE_DEFINED
        assert column.ignored.default


@pytest.mark.unit
class TestPostgresSchemaPass:
    """Schema pass over pg_dump text."""

    DUMP = (
        "CREATE TABLE public.items (\n"
        "    id integer NOT NULL,\n"
        "    label text DEFAULT 'none'::text\n"
        ");\n"
        "CREATE TABLE public.tags (\n"
        "    id integer NOT NULL,\n"
        "    item_id integer\n"
        ");\n"
        "ALTER TABLE ONLY public.items ALTER COLUMN id SET DEFAULT nextval('public.items_id_seq'::regclass);\n"
        "ALTER TABLE ONLY public.items\n"
        "    ADD CONSTRAINT items_pkey PRIMARY KEY (id);\n"
        "ALTER TABLE ONLY public.tags\n"
        "    ADD CONSTRAINT tags_item_fkey FOREIGN KEY (item_id) REFERENCES public.items(id);\n"
        "CREATE INDEX tags_item_idx ON public.tags USING btree (item_id);\n"
    )

    def test_public_schema_is_dropped_from_names(self, build_schema, pg_dialect):
        ctx = build_schema(self.DUMP, pg_dialect)

        assert sorted(t.name for t in ctx.source.tables.values()) == ["items", "tags"]

    def test_alter_statements_apply(self, build_schema, pg_dialect):
        ctx = build_schema(self.DUMP, pg_dialect)

        items = ctx.source.table_by_name("items")
        tags = ctx.source.table_by_name("tags")
        id_col = items.column_by_name("id")
        assert [k.column_id for k in items.primary_keys] == [id_col.id]
        assert id_col.auto_gen.strategy == AutoGenStrategy.SEQUENCE
        assert id_col.auto_gen.name == "items_id_seq"
        (fk,) = tags.foreign_keys
        assert fk.refer_table_id == items.id
        assert [i.name for i in tags.indexes] == ["tags_item_idx"]

    def test_literal_default_is_captured(self, build_schema, pg_dialect):
        ctx = build_schema(self.DUMP, pg_dialect)

        label = ctx.source.table_by_name("items").column_by_name("label")
        assert label.default.is_literal
        assert label.default.literal == "none"


@pytest.mark.unit
class TestNormalizeCheckExpression:
    """Tests for normalize_check_expression()."""

    def test_wraps_bare_expression(self):
        assert normalize_check_expression("price > 0") == "(price > 0)"

    def test_keeps_wrapped_expression(self):
        assert normalize_check_expression("(price > 0)") == "(price > 0)"

    def test_wraps_two_parenthesized_halves(self):
        assert normalize_check_expression("(a > 0) AND (b > 0)") == "((a > 0) AND (b > 0))"

    def test_strips_charset_introducers(self):
        assert normalize_check_expression("(`status` IN (_utf8mb4'a', _utf8mb4 'b'))") == "(`status` IN ('a', 'b'))"
