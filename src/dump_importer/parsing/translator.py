"""
Translate sqlglot expression trees into the dialect-neutral statement model.

Only the node shapes a dump actually produces are handled; any other tree
becomes an ``Other`` statement carrying a short kind label so it can be
counted as skipped.
"""

import re
from typing import List, Optional

import structlog
from sqlglot import exp

from dump_importer.domain.statements import (
    AddColumn,
    AddConstraint,
    AlterAction,
    AlterTable,
    ColumnSpec,
    ConstraintKind,
    ConstraintSpec,
    CreateIndex,
    CreateTable,
    DefaultSpec,
    Insert,
    KeyPart,
    ModifyColumn,
    Other,
    ReferenceSpec,
    RowValue,
    SetColumnDefault,
    SetVariable,
    Statement,
    TableName,
    UnsupportedAction,
    ValueKind,
)

logger = structlog.get_logger(__name__)

REFERENTIAL_ACTION = re.compile(r"^ON\s+(DELETE|UPDATE)\s+(.+)$", re.IGNORECASE)
SET_TIME_ZONE_COMMAND = re.compile(r"^\s*(?:@@(?:SESSION\.)?)?TIME[\s_]+ZONE\s*(?:TO\s+|=\s*)?'([^']*)'", re.IGNORECASE)

LITERAL_KINDS = (ValueKind.STRING, ValueKind.NUMBER, ValueKind.BOOL)


def _table_name(node: Optional[exp.Expression]) -> Optional[TableName]:
    if isinstance(node, exp.Schema):
        node = node.this
    if not isinstance(node, exp.Table) or not node.name:
        return None
    return TableName(name=node.name, namespace=node.db or "")


def _key_part(node: exp.Expression) -> KeyPart:
    desc = False
    if isinstance(node, exp.Ordered):
        desc = bool(node.args.get("desc"))
        node = node.this
    if isinstance(node, exp.ColumnPrefix):
        node = node.this
    if isinstance(node, exp.Paren):
        node = node.this
    return KeyPart(column=node.name or node.sql(), desc=desc)


def _key_parts(nodes: Optional[List[exp.Expression]]) -> List[KeyPart]:
    return [_key_part(n) for n in nodes or []]


def literal_value(node: Optional[exp.Expression], read: str) -> RowValue:
    """Classify one value expression; anything but a plain literal is INVALID."""
    if node is None or isinstance(node, exp.Null):
        return RowValue(None, ValueKind.NULL)
    if isinstance(node, exp.Introducer):
        return literal_value(node.expression, read)
    if isinstance(node, exp.Paren):
        return literal_value(node.this, read)
    if isinstance(node, exp.Literal):
        return RowValue(node.this, ValueKind.STRING if node.is_string else ValueKind.NUMBER)
    if isinstance(node, exp.Neg) and isinstance(node.this, exp.Literal) and not node.this.is_string:
        return RowValue(f"-{node.this.this}", ValueKind.NUMBER)
    if isinstance(node, exp.Boolean):
        return RowValue("true" if node.this else "false", ValueKind.BOOL)
    if isinstance(node, exp.HexString):
        return RowValue(node.this, ValueKind.HEX)
    if isinstance(node, exp.BitString):
        return RowValue(node.this, ValueKind.BIT)
    if isinstance(node, (exp.National, exp.ByteString)):
        return RowValue(node.this, ValueKind.STRING)
    return RowValue(node.sql(dialect=read), ValueKind.INVALID)


class StatementTranslator:
    """Convert parsed sqlglot trees for one source dialect."""

    def __init__(self, read: str):
        self.read = read

    def translate(self, node: exp.Expression) -> List[Statement]:
        if isinstance(node, exp.Create):
            return [self._create(node)]
        if isinstance(node, exp.Alter):
            return [self._alter(node)]
        if isinstance(node, exp.Insert):
            return [self._insert(node)]
        if isinstance(node, exp.Set):
            return self._set(node)
        if isinstance(node, exp.Command):
            return self._command(node)
        return [Other(kind=type(node).__name__.lower())]

    # -- DDL ---------------------------------------------------------------

    def _create(self, node: exp.Create) -> Statement:
        kind = (node.args.get("kind") or "").upper()
        if kind == "TABLE":
            return self._create_table(node)
        if kind == "INDEX":
            return self._create_index(node)
        return Other(kind=f"create_{kind.lower() or 'unknown'}")

    def _create_table(self, node: exp.Create) -> Statement:
        schema = node.this
        table = _table_name(schema)
        if table is None or not isinstance(schema, exp.Schema):
            # CREATE TABLE ... AS SELECT / LIKE carry no column definitions
            return Other(kind="create_table_without_columns")

        columns: List[ColumnSpec] = []
        constraints: List[ConstraintSpec] = []
        for item in schema.expressions:
            if isinstance(item, exp.ColumnDef):
                columns.append(self._column(item))
            else:
                constraints.extend(self._table_constraints(item))
        return CreateTable(table=table, columns=columns, constraints=constraints)

    def _create_index(self, node: exp.Create) -> Statement:
        index = node.this
        if not isinstance(index, exp.Index):
            return Other(kind="create_index_unrecognized")
        table = _table_name(index.args.get("table"))
        if table is None:
            return Other(kind="create_index_without_table")
        params = index.args.get("params")
        key_nodes = (params.args.get("columns") if params else None) or index.expressions
        return CreateIndex(
            table=table,
            name=index.name,
            keys=_key_parts(key_nodes),
            unique=bool(node.args.get("unique")),
        )

    def _alter(self, node: exp.Alter) -> Statement:
        if node.kind != "TABLE":
            return Other(kind=f"alter_{(node.kind or 'unknown').lower()}")
        table = _table_name(node.this)
        if table is None:
            return Other(kind="alter_table_without_table")
        actions: List[AlterAction] = []
        for action in node.actions:
            actions.extend(self._alter_action(action))
        return AlterTable(table=table, actions=actions)

    def _alter_action(self, action: exp.Expression) -> List[AlterAction]:
        if isinstance(action, exp.AddConstraint):
            return [
                AddConstraint(constraint=c)
                for inner in action.expressions
                for c in self._table_constraints(inner)
            ]
        if isinstance(action, (exp.Constraint, exp.PrimaryKey, exp.ForeignKey)):
            return [AddConstraint(constraint=c) for c in self._table_constraints(action)]
        if isinstance(action, exp.ColumnDef):
            return [AddColumn(column=self._column(action))]
        if isinstance(action, exp.Schema):
            return [
                AddColumn(column=self._column(c))
                for c in action.expressions
                if isinstance(c, exp.ColumnDef)
            ]
        if isinstance(action, exp.ModifyColumn) and isinstance(action.this, exp.ColumnDef):
            rename_from = action.args.get("rename_from")
            return [
                ModifyColumn(
                    column=self._column(action.this),
                    rename_from=rename_from.name if rename_from is not None else None,
                )
            ]
        if isinstance(action, exp.AlterColumn) and action.args.get("allow_null") is None:
            if action.args.get("drop"):
                return [SetColumnDefault(column=action.this.name, default=None)]
            default = action.args.get("default")
            if default is not None:
                return [SetColumnDefault(column=action.this.name, default=self._default(default))]
        return [UnsupportedAction(description=type(action).__name__)]

    def _column(self, node: exp.ColumnDef) -> ColumnSpec:
        kind = node.args.get("kind")
        spec = ColumnSpec(
            name=node.name,
            type_text=kind.sql(dialect=self.read) if kind is not None else "",
        )
        for constraint in node.args.get("constraints") or []:
            ckind = constraint.args.get("kind") if isinstance(constraint, exp.ColumnConstraint) else constraint
            if isinstance(ckind, exp.NotNullColumnConstraint):
                spec.not_null = not ckind.args.get("allow_null")
            elif isinstance(ckind, exp.PrimaryKeyColumnConstraint):
                spec.primary_key = True
            elif isinstance(ckind, exp.UniqueColumnConstraint):
                spec.unique = True
            elif isinstance(ckind, exp.AutoIncrementColumnConstraint):
                spec.auto_increment = True
            elif isinstance(ckind, exp.GeneratedAsIdentityColumnConstraint):
                spec.identity = True
            elif isinstance(ckind, exp.DefaultColumnConstraint):
                spec.default = self._default(ckind.this)
            elif isinstance(ckind, exp.CheckColumnConstraint):
                spec.check = ckind.this.sql(dialect=self.read)
            elif isinstance(ckind, exp.Reference):
                spec.reference = self._reference(ckind, None)
            elif isinstance(ckind, exp.CommentColumnConstraint):
                spec.comment = ckind.this.name if ckind.this is not None else None
        return spec

    def _default(self, node: Optional[exp.Expression]) -> Optional[DefaultSpec]:
        if node is None or isinstance(node, exp.Null):
            return None
        inner = node.this if isinstance(node, exp.Cast) else node
        value = literal_value(inner, self.read)
        return DefaultSpec(
            expression=node.sql(dialect=self.read),
            literal=value.value if value.kind in LITERAL_KINDS else None,
            kind=value.kind,
        )

    def _reference(
        self, ref: Optional[exp.Reference], fk: Optional[exp.ForeignKey]
    ) -> Optional[ReferenceSpec]:
        if ref is None:
            return None
        target = ref.this
        table = _table_name(target)
        if table is None:
            return None
        columns = [p.column for p in _key_parts(target.expressions)] if isinstance(target, exp.Schema) else []
        spec = ReferenceSpec(table=table, columns=columns)
        for option in ref.args.get("options") or []:
            match = REFERENTIAL_ACTION.match(str(option))
            if match:
                action = " ".join(match.group(2).upper().split())
                if match.group(1).upper() == "DELETE":
                    spec.on_delete = action
                else:
                    spec.on_update = action
        if fk is not None:
            if fk.args.get("delete"):
                spec.on_delete = str(fk.args["delete"]).upper()
            if fk.args.get("update"):
                spec.on_update = str(fk.args["update"]).upper()
        return spec

    def _table_constraints(self, node: exp.Expression, name: str = "") -> List[ConstraintSpec]:
        if isinstance(node, exp.Constraint):
            return [
                c
                for inner in node.expressions
                for c in self._table_constraints(inner, name=node.name)
            ]
        if isinstance(node, exp.PrimaryKey):
            return [ConstraintSpec(ConstraintKind.PRIMARY_KEY, name, _key_parts(node.expressions))]
        if isinstance(node, exp.ForeignKey):
            return [
                ConstraintSpec(
                    ConstraintKind.FOREIGN_KEY,
                    name,
                    _key_parts(node.expressions),
                    reference=self._reference(node.args.get("reference"), node),
                )
            ]
        if isinstance(node, exp.UniqueColumnConstraint):
            target = node.this
            if isinstance(target, exp.Schema):
                index_name = target.this.name if target.this is not None else name
                parts = _key_parts(target.expressions)
            else:
                index_name = name
                parts = [KeyPart(column=i.name) for i in node.find_all(exp.Identifier)]
            return [ConstraintSpec(ConstraintKind.UNIQUE, index_name, parts)]
        if isinstance(node, exp.IndexColumnConstraint):
            return [
                ConstraintSpec(
                    ConstraintKind.INDEX,
                    node.name or name,
                    _key_parts(node.expressions),
                    index_kind=(node.args.get("kind") or "").upper(),
                )
            ]
        if isinstance(node, exp.CheckColumnConstraint):
            return [
                ConstraintSpec(ConstraintKind.CHECK, name, expression=node.this.sql(dialect=self.read))
            ]
        if isinstance(node, exp.ColumnConstraint):
            return self._table_constraints(node.args.get("kind"), name=node.name or name)
        logger.debug("translator.constraint_ignored", node_type=type(node).__name__)
        return []

    # -- DML / session -----------------------------------------------------

    def _insert(self, node: exp.Insert) -> Statement:
        target = node.this
        table = _table_name(target)
        if table is None:
            return Other(kind="insert_without_table")
        values = node.expression
        if not isinstance(values, exp.Values):
            return Other(kind="insert_select")
        columns = [c.name for c in target.expressions] if isinstance(target, exp.Schema) else []
        rows = []
        for row in values.expressions:
            items = row.expressions if isinstance(row, exp.Tuple) else [row]
            rows.append([literal_value(v, self.read) for v in items])
        return Insert(table=table, columns=columns, rows=rows)

    def _set(self, node: exp.Set) -> List[Statement]:
        statements: List[Statement] = []
        for item in node.expressions:
            assignment = item.this if isinstance(item, exp.SetItem) else item
            if isinstance(assignment, exp.EQ):
                value = literal_value(assignment.expression, self.read)
                statements.append(
                    SetVariable(
                        name=assignment.this.name or assignment.this.sql(dialect=self.read),
                        value=value.value,
                        is_literal=value.kind in LITERAL_KINDS,
                    )
                )
            else:
                statements.append(Other(kind="set"))
        return statements

    def _command(self, node: exp.Command) -> List[Statement]:
        keyword = str(node.this or "").upper()
        if keyword == "SET":
            body = node.expression.name if isinstance(node.expression, exp.Expression) else str(node.expression or "")
            match = SET_TIME_ZONE_COMMAND.match(body)
            if match:
                return [SetVariable(name="time_zone", value=match.group(1), is_literal=True)]
        return [Other(kind=keyword.lower() or "command")]
