"""Table endpoints: query, export and column layout."""

from typing import List
from urllib.parse import quote

from fastapi import APIRouter, Response, status

from app.api.deps import TableServiceDep
from app.schemas.table import (
    ColumnLayoutOut,
    KeysUpdate,
    TablePage,
    TableQueryIn,
    TableSummary,
    WidthUpdate,
)

router = APIRouter(prefix="/tables", tags=["tables"])


@router.get("/", response_model=List[TableSummary])
async def list_tables(service: TableServiceDep) -> List[TableSummary]:
    """List the registered tables."""
    return [
        TableSummary(biz_key=definition.biz_key, title=definition.title)
        for definition in service.list_tables()
    ]


@router.post("/{biz_key}/query", response_model=TablePage)
async def query_table(
    biz_key: str,
    body: TableQueryIn,
    service: TableServiceDep,
) -> dict:
    """
    Query one page of a table.

    The upstream list is fetched (concurrent identical fetches are shared)
    and searched, filtered, sorted and paginated locally.
    """
    return await service.query(biz_key, body.to_query(), body.params)


@router.post("/{biz_key}/export")
async def export_table(
    biz_key: str,
    body: TableQueryIn,
    service: TableServiceDep,
) -> Response:
    """Download every row matching the query as CSV (visible columns only)."""
    exported = await service.export(
        biz_key, body.to_query(), body.params, filename=body.filename
    )
    if exported is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(exported.filename)}"
        },
    )


@router.get("/{biz_key}/columns", response_model=ColumnLayoutOut)
async def get_columns(biz_key: str, service: TableServiceDep) -> dict:
    """Get the effective column layout."""
    return service.layout(biz_key)


@router.put("/{biz_key}/columns/visible", response_model=ColumnLayoutOut)
async def set_visible_columns(
    biz_key: str,
    body: KeysUpdate,
    service: TableServiceDep,
) -> dict:
    """Show exactly the given columns."""
    return service.set_visible_keys(biz_key, body.keys)


@router.put("/{biz_key}/columns/order", response_model=ColumnLayoutOut)
async def set_column_order(
    biz_key: str,
    body: KeysUpdate,
    service: TableServiceDep,
) -> dict:
    """Reorder columns."""
    return service.set_ordered_keys(biz_key, body.keys)


@router.put("/{biz_key}/columns/{column_key}/width", response_model=ColumnLayoutOut)
async def set_column_width(
    biz_key: str,
    column_key: str,
    body: WidthUpdate,
    service: TableServiceDep,
) -> dict:
    """Persist a column width (clamped to the minimum width)."""
    return service.set_width(biz_key, column_key, body.width)


@router.delete("/{biz_key}/columns", response_model=ColumnLayoutOut)
async def reset_columns(biz_key: str, service: TableServiceDep) -> dict:
    """Reset the layout to the table defaults."""
    return service.reset_columns(biz_key)
