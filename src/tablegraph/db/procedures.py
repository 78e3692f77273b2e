"""
Server-side bulk row procedures for PostgreSQL.

Each procedure performs one row mutation in a single statement. Relation
edges and recomputation stay in the application so both bulk strategies
share them.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from tablegraph.core.logging import get_logger

logger = get_logger(__name__)

BULK_UPDATE_ROWS = "tablegraph_bulk_update_rows"
BULK_DELETE_ROWS = "tablegraph_bulk_delete_rows"
BULK_DUPLICATE_ROWS = "tablegraph_bulk_duplicate_rows"
BULK_INSERT_ROWS = "tablegraph_bulk_insert_rows"

# Merged data keeps the table's field ids and *_computed_at keys only.
_BULK_UPDATE_SQL = f"""
CREATE OR REPLACE FUNCTION {BULK_UPDATE_ROWS}(
    p_table_id varchar,
    p_row_ids varchar[],
    p_updates jsonb,
    p_valid_ids varchar[],
    p_updated_by varchar
) RETURNS SETOF varchar
LANGUAGE plpgsql AS $$
BEGIN
    RETURN QUERY
    UPDATE table_rows AS r
    SET data = (
            SELECT COALESCE(jsonb_object_agg(e.key, e.value), '{{}}'::jsonb)::text
            FROM jsonb_each(COALESCE(NULLIF(r.data, '')::jsonb, '{{}}'::jsonb) || p_updates) AS e
            WHERE e.key = ANY(p_valid_ids) OR e.key LIKE '%\\_computed\\_at'
        ),
        version = r.version + 1,
        updated_by = p_updated_by,
        updated_at = now(),
        edited = CASE
            WHEN r.source_entity_id IS NOT NULL
                 AND COALESCE(r.source_sync_mode, 'snapshot') <> 'live' THEN true
            ELSE r.edited
        END
    WHERE r.table_id = p_table_id AND r.id = ANY(p_row_ids)
    RETURNING r.id::varchar;
END;
$$;
"""

_BULK_DELETE_SQL = f"""
CREATE OR REPLACE FUNCTION {BULK_DELETE_ROWS}(
    p_table_id varchar,
    p_row_ids varchar[]
) RETURNS integer
LANGUAGE plpgsql AS $$
DECLARE
    deleted integer;
BEGIN
    DELETE FROM table_rows WHERE table_id = p_table_id AND id = ANY(p_row_ids);
    GET DIAGNOSTICS deleted = ROW_COUNT;
    RETURN deleted;
END;
$$;
"""

# p_items: [{"source_id", "new_id", "order"}]
_BULK_DUPLICATE_SQL = f"""
CREATE OR REPLACE FUNCTION {BULK_DUPLICATE_ROWS}(
    p_table_id varchar,
    p_items jsonb,
    p_created_by varchar
) RETURNS SETOF varchar
LANGUAGE plpgsql AS $$
BEGIN
    RETURN QUERY
    INSERT INTO table_rows (
        id, table_id, data, "order", source_entity_id, source_entity_type,
        source_sync_mode, edited, created_by, updated_by, version, created_at, updated_at
    )
    SELECT
        item->>'new_id', r.table_id, r.data, (item->>'order')::double precision,
        r.source_entity_id, r.source_entity_type,
        CASE WHEN r.source_entity_id IS NULL THEN NULL
             ELSE COALESCE(r.source_sync_mode, 'snapshot') END,
        r.edited, p_created_by, p_created_by, 1, now(), now()
    FROM jsonb_array_elements(p_items) WITH ORDINALITY AS items(item, position)
    JOIN table_rows r ON r.id = item->>'source_id' AND r.table_id = p_table_id
    ORDER BY items.position
    RETURNING id::varchar;
END;
$$;
"""

# p_rows: [{"id", "data", "order", "source_entity_id", "source_entity_type", "source_sync_mode"}]
_BULK_INSERT_SQL = f"""
CREATE OR REPLACE FUNCTION {BULK_INSERT_ROWS}(
    p_table_id varchar,
    p_rows jsonb,
    p_created_by varchar
) RETURNS SETOF varchar
LANGUAGE plpgsql AS $$
BEGIN
    RETURN QUERY
    INSERT INTO table_rows (
        id, table_id, data, "order", source_entity_id, source_entity_type,
        source_sync_mode, edited, created_by, updated_by, version, created_at, updated_at
    )
    SELECT
        item->>'id', p_table_id, COALESCE(item->'data', '{{}}'::jsonb)::text,
        (item->>'order')::double precision,
        item->>'source_entity_id', item->>'source_entity_type', item->>'source_sync_mode',
        false, p_created_by, p_created_by, 1, now(), now()
    FROM jsonb_array_elements(p_rows) WITH ORDINALITY AS items(item, position)
    ORDER BY items.position
    RETURNING id::varchar;
END;
$$;
"""

PROCEDURES = {
    BULK_UPDATE_ROWS: _BULK_UPDATE_SQL,
    BULK_DELETE_ROWS: _BULK_DELETE_SQL,
    BULK_DUPLICATE_ROWS: _BULK_DUPLICATE_SQL,
    BULK_INSERT_ROWS: _BULK_INSERT_SQL,
}


async def install_procedures(conn: AsyncConnection) -> None:
    """Create or replace the bulk procedures on a PostgreSQL connection."""
    for name, ddl in PROCEDURES.items():
        await conn.execute(text(ddl))
        logger.debug("Installed procedure", extra={"procedure": name})
    logger.info("Bulk procedures installed", extra={"count": len(PROCEDURES)})


async def missing_procedures(conn: AsyncConnection) -> list[str]:
    """Bulk procedures not present on a PostgreSQL connection."""
    result = await conn.execute(
        text("SELECT proname FROM pg_proc WHERE proname = ANY(:names)"),
        {"names": list(PROCEDURES)},
    )
    found = set(result.scalars().all())
    return [name for name in PROCEDURES if name not in found]
