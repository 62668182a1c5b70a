#!/usr/bin/env python
# ============================================================================
# SCHEMA DEPLOYMENT SCRIPT
# ============================================================================
# PURPOSE: Deploy the jobqueue schema to PostgreSQL from the Job model
# USAGE:
#   python scripts/deploy_schema.py --dry-run    # Preview SQL
#   python scripts/deploy_schema.py              # Execute deployment
#   python scripts/deploy_schema.py --status     # Check current status
#   python scripts/deploy_schema.py --rebuild    # DROP and recreate (data loss)
# ============================================================================

import argparse
import logging
import os
import sys
from typing import Dict, List

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import psycopg
from psycopg import sql

from repositories.database import get_connection_string, mask_connection_string
from repositories.schema import JobQueueSchema

logger = logging.getLogger("deploy_schema")


def table_status(conn: psycopg.Connection, schema_name: str) -> Dict[str, int]:
    """Row count per table in the schema (empty if the schema is missing)."""
    rows = conn.execute(
        "SELECT table_name FROM information_schema.tables WHERE table_schema = %s ORDER BY table_name",
        (schema_name,),
    ).fetchall()

    counts = {}
    for (table_name,) in rows:
        (count,) = conn.execute(
            sql.SQL("SELECT COUNT(*) FROM {}").format(sql.Identifier(schema_name, table_name))
        ).fetchone()
        counts[table_name] = count
    return counts


def deploy(conn: psycopg.Connection, statements: List[sql.Composable], dry_run: bool) -> int:
    if dry_run:
        for stmt in statements:
            print(stmt.as_string(conn).strip() + ";\n")
        return len(statements)

    with conn.transaction():
        for stmt in statements:
            logger.debug(stmt.as_string(conn))
            conn.execute(stmt)
    return len(statements)


def main():
    parser = argparse.ArgumentParser(
        description="Deploy jobqueue schema to PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/deploy_schema.py --dry-run     # Preview DDL without executing
  python scripts/deploy_schema.py               # Deploy schema
  python scripts/deploy_schema.py --status      # Check current installation

Environment Variables:
  DATABASE_URL          Full PostgreSQL connection string
  POSTGRES_HOST         Database host (default: localhost)
  POSTGRES_DB           Database name (default: postgres)
  POSTGRES_USER         Database user (default: postgres)
  POSTGRES_PASSWORD     Database password
  POSTGRES_PORT         Database port (default: 5432)
  POSTGRES_SSLMODE      SSL mode (default: prefer)
        """
    )
    parser.add_argument("--dry-run", action="store_true", help="Print DDL without executing")
    parser.add_argument("--status", action="store_true", help="Check current installation status")
    parser.add_argument("--rebuild", action="store_true", help="Drop the schema first (destroys data)")
    parser.add_argument("--connection", type=str, help="PostgreSQL connection string (overrides environment)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    conninfo = args.connection or get_connection_string()
    schema = JobQueueSchema()

    print("=" * 70)
    print("JOBQUEUE - Schema Deployment")
    print("=" * 70)
    print(f"Database: {mask_connection_string(conninfo)}")
    print(f"Schema: {schema.schema_name}")
    print("=" * 70)

    try:
        with psycopg.connect(conninfo, autocommit=True) as conn:
            if args.status:
                counts = table_status(conn, schema.schema_name)
                print(f"\nSchema exists: {bool(counts)}")
                for table_name, count in counts.items():
                    print(f"  - {schema.schema_name}.{table_name}: {count} rows")
                return

            statements: List[sql.Composable] = []
            if args.rebuild:
                statements.append(schema.generate_drop_schema())
            statements.extend(schema.generate_all())

            print(f"\nMode: {'DRY RUN' if args.dry_run else 'EXECUTE'}\n")
            executed = deploy(conn, statements, args.dry_run)
    except psycopg.Error as e:
        logger.error(f"Deployment failed: {e}")
        sys.exit(1)

    print("=" * 70)
    print(f"Done: {executed} statements {'generated' if args.dry_run else 'executed'}")
    print("=" * 70)


if __name__ == "__main__":
    main()
