# ============================================================================
# SCHEMA GENERATOR
# ============================================================================
# STATUS: Core - DDL generation from the Job model
# PURPOSE: Generate PostgreSQL CREATE statements for the job queue tables
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: JobQueueSchema
# DEPENDENCIES: pydantic, psycopg
# ============================================================================
"""
Job Queue Schema Generator.

The jobs table is generated from the Job model's fields and its __sql_*
ClassVar metadata, so the pydantic model stays the single source of truth.
The two side tables (dependency edges and related entities) have no model
of their own and are declared here.

Model Metadata Convention:
    - __sql_table__: Table name
    - __sql_schema__: Schema name
    - __sql_primary_key__: Primary key column(s)
    - __sql_foreign_keys__: Dict of {column: "schema.table(column)"}
    - __sql_indexes__: List of (name, columns) index definitions
    - __sql_serial_columns__: Columns generated by the database

Usage:
    schema = JobQueueSchema()
    for stmt in schema.generate_all():
        await conn.execute(stmt)
"""

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Sequence, Type, Union, get_args, get_origin

from annotated_types import MaxLen
from psycopg import sql
from pydantic import BaseModel
from pydantic.fields import FieldInfo

from core.models import Job

logger = logging.getLogger(__name__)


def _index(schema: str, table: str, name: str, columns: Sequence[str]) -> sql.Composed:
    return sql.SQL("CREATE INDEX IF NOT EXISTS {name} ON {schema}.{table} ({columns})").format(
        name=sql.Identifier(name),
        schema=sql.Identifier(schema),
        table=sql.Identifier(table),
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
    )


class JobQueueSchema:
    """
    Build the job queue DDL.

    Enum fields are stored as VARCHAR holding the enum value, so queries can
    bind plain strings and string arrays without casts.
    """

    TYPE_MAP = {
        str: "VARCHAR",
        int: "INTEGER",
        float: "DOUBLE PRECISION",
        bool: "BOOLEAN",
        datetime: "TIMESTAMPTZ",
        dict: "JSONB",
        list: "JSONB",
    }

    # Columns that need a wider integer than the model annotation implies
    BIGINT_COLUMNS = ("original_job_id", "memory_usage", "memory_usage_real")

    def __init__(self, model: Type[BaseModel] = Job):
        self.model = model
        self.schema_name: str = getattr(model, "__sql_schema__")
        self.table_name: str = getattr(model, "__sql_table__")

    # =========================================================================
    # TYPE CONVERSION
    # =========================================================================

    @staticmethod
    def _unwrap_optional(annotation: Any) -> tuple:
        if get_origin(annotation) is Union:
            args = [a for a in get_args(annotation) if a is not type(None)]
            if len(args) == 1:
                return args[0], True
        return annotation, False

    def python_type_to_sql(self, name: str, annotation: Any, field_info: FieldInfo) -> str:
        actual_type, _ = self._unwrap_optional(annotation)

        if get_origin(actual_type) in (list, List, dict, Dict):
            return "JSONB"

        if name in self.BIGINT_COLUMNS:
            return "BIGINT"

        if isinstance(actual_type, type) and issubclass(actual_type, Enum):
            longest = max(len(member.value) for member in actual_type)
            return f"VARCHAR({longest})"

        if actual_type is str:
            for constraint in field_info.metadata:
                if isinstance(constraint, MaxLen):
                    return f"VARCHAR({constraint.max_length})"
            return "TEXT"

        return self.TYPE_MAP.get(actual_type, "JSONB")

    # =========================================================================
    # TABLES
    # =========================================================================

    def generate_jobs_table(self) -> sql.Composed:
        """CREATE TABLE for the Job model (relations are skipped)."""
        primary_key = list(getattr(self.model, "__sql_primary_key__", []))
        serial_columns = list(getattr(self.model, "__sql_serial_columns__", []))
        foreign_keys: Dict[str, str] = dict(getattr(self.model, "__sql_foreign_keys__", {}))

        columns = []
        for name, field_info in self.model.model_fields.items():
            if field_info.exclude:
                continue

            _, is_optional = self._unwrap_optional(field_info.annotation)
            if name in serial_columns:
                type_sql = "BIGSERIAL"
            else:
                type_sql = self.python_type_to_sql(name, field_info.annotation, field_info)

            parts = [sql.Identifier(name), sql.SQL(" " + type_sql)]

            if not is_optional and name not in primary_key and name not in serial_columns:
                parts.append(sql.SQL(" NOT NULL"))

            default = field_info.get_default(call_default_factory=False)
            if isinstance(default, Enum):
                parts.extend([sql.SQL(" DEFAULT "), sql.Literal(default.value)])
            elif isinstance(default, bool):
                parts.append(sql.SQL(" DEFAULT true" if default else " DEFAULT false"))
            elif isinstance(default, (int, float, str)):
                parts.extend([sql.SQL(" DEFAULT "), sql.Literal(default)])
            elif field_info.default_factory is not None:
                if type_sql == "TIMESTAMPTZ":
                    parts.append(sql.SQL(" DEFAULT NOW()"))
                elif type_sql == "JSONB":
                    parts.append(sql.SQL(" DEFAULT '[]'"))

            columns.append(sql.SQL("").join(parts))

        constraints = []
        if primary_key:
            constraints.append(
                sql.SQL("PRIMARY KEY ({})").format(
                    sql.SQL(", ").join(sql.Identifier(c) for c in primary_key)
                )
            )

        for fk_column, fk_reference in foreign_keys.items():
            match = re.match(r"(\w+)\.(\w+)\((\w+)\)", fk_reference)
            if match:
                ref_schema, ref_table, ref_column = match.groups()
                constraints.append(
                    sql.SQL("FOREIGN KEY ({}) REFERENCES {}.{} ({})").format(
                        sql.Identifier(fk_column),
                        sql.Identifier(ref_schema),
                        sql.Identifier(ref_table),
                        sql.Identifier(ref_column),
                    )
                )

        return sql.SQL("CREATE TABLE IF NOT EXISTS {}.{} ({})").format(
            sql.Identifier(self.schema_name),
            sql.Identifier(self.table_name),
            sql.SQL(", ").join(columns + constraints),
        )

    def generate_dependencies_table(self) -> sql.Composed:
        """source_job_id depends on dest_job_id."""
        return sql.SQL("""
            CREATE TABLE IF NOT EXISTS {deps} (
                source_job_id BIGINT NOT NULL REFERENCES {jobs} (id) ON DELETE CASCADE,
                dest_job_id BIGINT NOT NULL REFERENCES {jobs} (id) ON DELETE CASCADE,
                PRIMARY KEY (source_job_id, dest_job_id)
            )
        """).format(
            deps=sql.Identifier(self.schema_name, "job_dependencies"),
            jobs=sql.Identifier(self.schema_name, self.table_name),
        )

    def generate_related_entities_table(self) -> sql.Composed:
        return sql.SQL("""
            CREATE TABLE IF NOT EXISTS {related} (
                job_id BIGINT NOT NULL REFERENCES {jobs} (id) ON DELETE CASCADE,
                related_class VARCHAR(150) NOT NULL,
                related_id VARCHAR(100) NOT NULL,
                PRIMARY KEY (job_id, related_class, related_id)
            )
        """).format(
            related=sql.Identifier(self.schema_name, "job_related_entities"),
            jobs=sql.Identifier(self.schema_name, self.table_name),
        )

    # =========================================================================
    # INDEXES
    # =========================================================================

    def generate_indexes(self) -> List[sql.Composed]:
        statements = [
            _index(self.schema_name, self.table_name, name, columns)
            for name, columns in getattr(self.model, "__sql_indexes__", [])
        ]
        statements.append(
            _index(self.schema_name, "job_dependencies", "dest_job_index", ["dest_job_id"])
        )
        statements.append(
            _index(
                self.schema_name, "job_related_entities",
                "related_entity_index", ["related_class", "related_id"],
            )
        )
        return statements

    # =========================================================================
    # COMPLETE SCHEMA
    # =========================================================================

    def generate_drop_schema(self) -> sql.Composed:
        """DROP SCHEMA CASCADE. Destroys all queue data."""
        return sql.SQL("DROP SCHEMA IF EXISTS {} CASCADE").format(
            sql.Identifier(self.schema_name)
        )

    def generate_all(self) -> List[sql.Composed]:
        statements = [
            sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(self.schema_name)),
            self.generate_jobs_table(),
            self.generate_dependencies_table(),
            self.generate_related_entities_table(),
        ]
        statements.extend(self.generate_indexes())

        logger.info(f"Generated {len(statements)} DDL statements for schema {self.schema_name}")
        return statements


__all__ = ["JobQueueSchema"]
