"""
DDL synthesis for the detected entities.

Output is plain SQL text with four fixed sections (tables, foreign keys,
indexes, check constraints) and two optional ones (sample data, views). The
generator is a pure function of the entity list and configuration: no
timestamps, no set iteration, so repeated runs are byte-identical.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy.sql.compiler import RESERVED_WORDS

from .config import CONFIG, NormalizerConfig
from .models import Column, Entity, RelationshipKind
from .vocabulary import contains_any

logger = logging.getLogger(__name__)

NUMERIC_VALUE_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)$")
PLAIN_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# --------------------------------------------------------------------------------------
# Identifier helpers
# --------------------------------------------------------------------------------------
def is_reserved(name: str) -> bool:
    return name.lower() in RESERVED_WORDS


def quote_ident(name: str) -> str:
    """Bracket-quote reserved words and names that are not plain identifiers.

    `user` -> `[user]`, `2024_ventas` -> `[2024_ventas]`; `nombre` passes through.
    An embedded closing bracket is escaped by doubling it.
    """
    if PLAIN_IDENT_RE.match(name) and not is_reserved(name):
        return name
    return "[" + name.replace("]", "]]") + "]"


def is_integer_type(sql_type: str) -> bool:
    return sql_type.upper().split("(")[0] in CONFIG["SQL"]["INTEGER_TYPES"]


def is_numeric_type(sql_type: str) -> bool:
    upper = sql_type.upper()
    return any(marker in upper for marker in CONFIG["SQL"]["NUMERIC_TYPE_MARKERS"])


def is_character_type(sql_type: str) -> bool:
    upper = sql_type.upper()
    return any(marker in upper for marker in CONFIG["SQL"]["CHARACTER_TYPE_MARKERS"])


def sql_literal(value: str, sql_type: str) -> str:
    if value == "":
        return "NULL"
    if is_numeric_type(sql_type) and NUMERIC_VALUE_RE.match(value):
        return value
    return "'" + value.replace("'", "''") + "'"


# --------------------------------------------------------------------------------------
# Generator
# --------------------------------------------------------------------------------------
class SqlGenerator:
    """Emits CREATE TABLE / FOREIGN KEY / INDEX / CHECK DDL in dependency order."""

    def __init__(self, config: Optional[NormalizerConfig] = None) -> None:
        self.config = config or NormalizerConfig()
        self.vocabulary = self.config.vocabulary

    def generate(self, entities: Sequence[Entity]) -> str:
        ordered = self.order_entities(entities)
        by_name = {e.name: e for e in ordered}
        sections = [
            self._tables(ordered),
            self._foreign_keys(ordered, by_name),
            self._indexes(ordered),
            self._constraints(ordered),
        ]
        if self.config.include_sample_data:
            sections.append(self._sample_data(ordered))
        if self.config.include_views:
            sections.append(self._views(ordered, by_name))
        return "".join(sections)

    # -- ordering --------------------------------------------------------------------------
    @staticmethod
    def order_entities(entities: Sequence[Entity]) -> List[Entity]:
        """Depth-first: referenced entities come before the entity referencing them.

        Cycles are broken by visitation order.
        """
        by_name = {e.name: e for e in entities}
        visited: Set[str] = set()
        ordered: List[Entity] = []

        def visit(name: str) -> None:
            if name in visited or name not in by_name:
                return
            visited.add(name)
            entity = by_name[name]
            for rel in entity.relationships:
                if rel.kind != RelationshipKind.MANY_TO_MANY:
                    visit(rel.references.table)
            ordered.append(entity)

        for entity in entities:
            visit(entity.name)
        return ordered

    # -- 1. tables -------------------------------------------------------------------------
    def _tables(self, entities: Sequence[Entity]) -> str:
        out = ["-- ===== 1. CREATE TABLES =====\n\n"]
        for entity in entities:
            pk = self._ddl_key(entity)
            if entity.primary_key is None:
                logger.warning("Entity %s has no primary key; using %s in the DDL", entity.name, pk.name)
            out.append(f"-- {entity.purpose}\n" if entity.purpose else "")
            out.append(f"CREATE TABLE {quote_ident(entity.name)} (\n")
            out.append(",\n".join(self._column_definition(col, col.name == pk.name) for col in entity.columns))
            out.append("\n);\n\n")
        return "".join(out)

    @staticmethod
    def _ddl_key(entity: Entity) -> Column:
        """The declared primary key, else the first column."""
        return entity.primary_key if entity.primary_key is not None else entity.columns[0]

    @staticmethod
    def _column_definition(col: Column, is_key: bool) -> str:
        definition = f"    {quote_ident(col.name)} {col.type}"
        if is_key:
            if is_integer_type(col.type):
                return definition + " IDENTITY(1,1) PRIMARY KEY"
            return definition + " PRIMARY KEY"
        if col.is_required:
            definition += " NOT NULL"
        return definition

    # -- 2. foreign keys -------------------------------------------------------------------
    def _foreign_keys(self, entities: Sequence[Entity], by_name: Dict[str, Entity]) -> str:
        out = ["-- ===== 2. FOREIGN KEYS =====\n\n"]
        seen: Set[Tuple[str, str, str]] = set()
        emitted = 0

        def emit(entity: Entity, column: str, target: str, target_column: str) -> None:
            nonlocal emitted
            triple = (entity.name, column, target)
            if triple in seen:
                return
            seen.add(triple)
            if target not in by_name:
                logger.warning("Skipping foreign key %s.%s: target table %s not found", entity.name, column, target)
                return
            emitted += 1
            out.append(f"-- {entity.name}.{column} -> {target}.{target_column}\n")
            out.append(f"ALTER TABLE {quote_ident(entity.name)} ADD CONSTRAINT FK_{entity.name}_{column}\n")
            out.append(
                f"FOREIGN KEY ({quote_ident(column)}) REFERENCES {quote_ident(target)}({quote_ident(target_column)});\n\n"
            )

        for entity in entities:
            for rel in entity.relationships:
                if rel.kind == RelationshipKind.MANY_TO_MANY:
                    continue
                emit(entity, rel.column, rel.references.table, rel.references.column)

        for entity in entities:
            related = {rel.column for rel in entity.relationships}
            for col in entity.columns:
                if not col.is_foreign_key or col.is_primary_key or col.name in related:
                    continue
                base = self.vocabulary.identifier_base(col.name)
                if not base:
                    logger.warning("Skipping foreign key %s.%s: no target table name", entity.name, col.name)
                    continue
                target = self.vocabulary.resolve_table_name(base)
                target_entity = by_name.get(target)
                target_column = (
                    target_entity.primary_key.name
                    if target_entity is not None and target_entity.primary_key is not None
                    else col.name
                )
                emit(entity, col.name, target, target_column)

        if not emitted:
            out.append("-- No foreign keys detected\n\n")
        return "".join(out)

    # -- 3. indexes ------------------------------------------------------------------------
    def _indexes(self, entities: Sequence[Entity]) -> str:
        out = ["-- ===== 3. INDEXES =====\n\n"]
        seen: Set[str] = set()
        for entity in entities:
            candidates: List[str] = [rel.column for rel in entity.relationships]
            candidates += [c.name for c in entity.columns if c.is_foreign_key and not c.is_primary_key]
            candidates += [
                c.name
                for c in entity.columns
                if not c.is_primary_key and contains_any(c.name, self.vocabulary.index_keywords)
            ]
            for column in candidates:
                index_name = f"idx_{entity.name.lower()}_{column}"
                if index_name in seen:
                    continue
                seen.add(index_name)
                out.append(f"CREATE INDEX {index_name} ON {quote_ident(entity.name)}({quote_ident(column)});\n")
        out.append("\n")
        return "".join(out)

    # -- 4. checks -------------------------------------------------------------------------
    def _constraints(self, entities: Sequence[Entity]) -> str:
        out = ["-- ===== 4. CHECK CONSTRAINTS =====\n\n"]
        emitted = 0
        for entity in entities:
            for col in entity.columns:
                for suffix, expression in self.column_checks(col):
                    emitted += 1
                    out.append(
                        f"ALTER TABLE {quote_ident(entity.name)} ADD CONSTRAINT "
                        f"chk_{entity.name.lower()}_{col.name}_{suffix}\n"
                    )
                    out.append(f"CHECK ({expression});\n\n")
        if not emitted:
            out.append("-- No additional check constraints required\n\n")
        return "".join(out)

    def column_checks(self, col: Column) -> List[Tuple[str, str]]:
        vocab = self.vocabulary
        name = quote_ident(col.name)
        checks: List[Tuple[str, str]] = []
        if is_numeric_type(col.type):
            if contains_any(col.name, vocab.positive_keywords):
                checks.append(("positive", f"{name} > 0"))
            if contains_any(col.name, vocab.non_negative_keywords):
                checks.append(("non_negative", f"{name} >= 0"))
        if contains_any(col.name, vocab.email_keywords):
            checks.append(("format", f"{name} LIKE '%_@__%.__%'"))
        if contains_any(col.name, vocab.date_keywords):
            checks.append(("valid", f"{name} <= CURRENT_TIMESTAMP"))
        if contains_any(col.name, vocab.code_keywords) and is_character_type(col.type):
            checks.append(("length", f"LEN({name}) >= {CONFIG['SQL']['MIN_CODE_LENGTH']}"))
        return checks

    # -- 5. sample data --------------------------------------------------------------------
    def _sample_data(self, entities: Sequence[Entity]) -> str:
        out = ["-- ===== 5. SAMPLE DATA =====\n\n"]
        limit = self.config.max_sample_rows
        for entity in entities:
            if not entity.columns or not entity.columns[0].values:
                continue
            rows: List[Tuple[str, ...]] = []
            seen: Set[Tuple[str, ...]] = set()
            for row in zip(*(c.values for c in entity.columns)):
                if row in seen or all(v == "" for v in row):
                    continue
                seen.add(row)
                rows.append(row)
                if len(rows) >= limit:
                    break
            if not rows:
                continue
            identity = is_integer_type(self._ddl_key(entity).type)
            table = quote_ident(entity.name)
            column_list = ", ".join(quote_ident(c.name) for c in entity.columns)
            if identity:
                out.append(f"SET IDENTITY_INSERT {table} ON;\n")
            for row in rows:
                values = ", ".join(sql_literal(v, c.type) for v, c in zip(row, entity.columns))
                out.append(f"INSERT INTO {table} ({column_list}) VALUES ({values});\n")
            if identity:
                out.append(f"SET IDENTITY_INSERT {table} OFF;\n")
            out.append("\n")
        return "".join(out)

    # -- 6. views --------------------------------------------------------------------------
    def _views(self, entities: Sequence[Entity], by_name: Dict[str, Entity]) -> str:
        out = ["-- ===== 6. VIEWS =====\n\n"]
        for entity in entities:
            joins: List[str] = []
            selected: List[str] = ["t.*"]
            for position, rel in enumerate(entity.relationships, start=1):
                target = by_name.get(rel.references.table)
                if target is None or target is entity:
                    continue
                alias = f"r{position}"
                joins.append(
                    f"LEFT JOIN {quote_ident(target.name)} {alias} "
                    f"ON t.{quote_ident(rel.column)} = {alias}.{quote_ident(rel.references.column)}"
                )
                for col in target.columns:
                    if col.name != rel.references.column:
                        selected.append(f"{alias}.{quote_ident(col.name)} AS {target.name.lower()}_{col.name}")
            out.append(f"CREATE VIEW vw_{entity.name.lower()} AS\n")
            out.append(f"SELECT {', '.join(selected)}\n")
            out.append(f"FROM {quote_ident(entity.name)} t")
            for join in joins:
                out.append(f"\n{join}")
            out.append(";\n\n")
        return "".join(out)
