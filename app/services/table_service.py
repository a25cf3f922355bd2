"""Table query, export and column layout service."""

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.exceptions import ApiError, BadRequest, NotFound, UpstreamUnavailable
from app.database import SessionLocal
from app.services.column_storage import SqlColumnStorage
from app.services.upstream_client import UpstreamClient
from app.tables.registry import TABLES, TableDefinition
from smarttable.column_persist import ColumnStorage
from smarttable.column_prefs import ColumnPreferenceStore
from smarttable.export import CsvExporter, ExportFile
from smarttable.local_query import apply_local_query
from smarttable.orchestrator import InFlightRegistry, TableDataOrchestrator, dedupe
from smarttable.query_state import TableQuery

settings = get_settings()
logger = logging.getLogger(__name__)


def fetch_signature(biz_key: str, params: Mapping[str, Any]) -> str:
    """
    Dedup key of an upstream list fetch.

    The upstream returns full lists, so the local query takes no part:
    only the table and its upstream parameters matter.
    """
    return json.dumps(
        {"table": biz_key, "params": dict(params)},
        sort_keys=True,
        default=str,
        ensure_ascii=False,
    )


class TableService:
    """
    Serve the registered tables.

    One instance is shared by all requests so concurrent fetches of the
    same table and parameters share a single upstream call.
    """

    def __init__(
        self,
        client: UpstreamClient,
        storage: ColumnStorage,
        tables: Optional[Dict[str, TableDefinition]] = None,
        registry: Optional[InFlightRegistry] = None,
    ):
        self.client = client
        self.storage = storage
        self.tables = tables if tables is not None else TABLES
        self.registry = registry if registry is not None else InFlightRegistry()
        self._exporters: Dict[str, CsvExporter] = {}

    async def close(self) -> None:
        await self.client.close()

    def list_tables(self) -> List[TableDefinition]:
        return list(self.tables.values())

    def get_definition(self, biz_key: str) -> TableDefinition:
        definition = self.tables.get(biz_key)
        if definition is None:
            raise NotFound(f"Table '{biz_key}'")
        return definition

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    async def load_rows(
        self, definition: TableDefinition, params: Mapping[str, Any], query: TableQuery
    ) -> List[Any]:
        """
        Fetch the full upstream list of a table.

        Raises:
            BadRequest: a required upstream parameter is missing
            UpstreamUnavailable: the upstream fetch failed
        """
        missing = definition.missing_params(params)
        if missing:
            raise BadRequest(f"Missing parameters for {definition.biz_key}: {', '.join(missing)}")

        signature = fetch_signature(definition.biz_key, params)
        fetcher = dedupe(
            definition.build_fetcher(self.client, params),
            key=lambda *args, **kwargs: signature,
            registry=self.registry,
        )
        orchestrator = TableDataOrchestrator(
            fetcher,
            auto_deps="reload",
            signature=lambda q: signature,
        )
        await orchestrator.mount(query)
        orchestrator.unmount()

        if orchestrator.error is not None:
            cause = orchestrator.error.__cause__
            code = cause.code if isinstance(cause, ApiError) else "UNKNOWN"
            raise UpstreamUnavailable(code, orchestrator.error.message)
        return orchestrator.list

    async def query(
        self, biz_key: str, query: TableQuery, params: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """Fetch, then search / filter / sort / paginate locally."""
        definition = self.get_definition(biz_key)
        rows = await self.load_rows(definition, params, query)
        result = apply_local_query(rows, query, definition.options)
        store = self.column_store(biz_key)
        logger.debug(f"{biz_key}: {result.total} of {len(rows)} rows matched")
        return {
            "list": result.list,
            "total": result.total,
            "columns": [c.to_dict() for c in store.columns if not c.hidden],
        }

    def exporter(self, definition: TableDefinition) -> CsvExporter:
        exporter = self._exporters.get(definition.biz_key)
        if exporter is None:
            exporter = CsvExporter(
                filename_base=definition.filename_base,
                with_bom=settings.EXPORT_WITH_BOM,
            )
            self._exporters[definition.biz_key] = exporter
        return exporter

    async def export(
        self,
        biz_key: str,
        query: TableQuery,
        params: Mapping[str, Any],
        filename: Optional[str] = None,
    ) -> Optional[ExportFile]:
        """
        Export every row matching the query (not just the current page).

        Returns:
            The CSV file, or None when there is nothing to export
        """
        definition = self.get_definition(biz_key)
        rows = await self.load_rows(definition, params, query)
        result = apply_local_query(rows, query, definition.options)
        columns = self.column_store(biz_key).visible_columns
        return await self.exporter(definition).export(
            result.filtered,
            columns,
            map_row=definition.map_row,
            filename=filename,
        )

    # ------------------------------------------------------------------
    # Column layout
    # ------------------------------------------------------------------

    def column_store(self, biz_key: str) -> ColumnPreferenceStore:
        definition = self.get_definition(biz_key)
        return ColumnPreferenceStore(
            biz_key=definition.biz_key,
            presets=definition.presets,
            storage=self.storage,
            version=settings.COLUMN_STATE_VERSION,
            prefix=settings.COLUMN_PERSIST_PREFIX,
        )

    def layout(self, biz_key: str, store: Optional[ColumnPreferenceStore] = None) -> Dict[str, Any]:
        store = store or self.column_store(biz_key)
        persisted = store.persisted
        return {
            "biz_key": biz_key,
            "columns": [column.to_dict() for column in store.columns],
            "visible_keys": store.visible_keys,
            "updated_at": persisted.updated_at if persisted is not None else None,
        }

    def set_visible_keys(self, biz_key: str, keys: List[str]) -> Dict[str, Any]:
        store = self.column_store(biz_key)
        store.set_visible_keys(keys)
        return self.layout(biz_key, store)

    def set_ordered_keys(self, biz_key: str, keys: List[str]) -> Dict[str, Any]:
        store = self.column_store(biz_key)
        store.set_ordered_keys(keys)
        return self.layout(biz_key, store)

    def set_width(self, biz_key: str, column_key: str, width: float) -> Dict[str, Any]:
        store = self.column_store(biz_key)
        if not store.has_column(column_key):
            raise NotFound(f"Column '{column_key}'")
        store.set_width(column_key, width)
        return self.layout(biz_key, store)

    def reset_columns(self, biz_key: str) -> Dict[str, Any]:
        store = self.column_store(biz_key)
        store.reset_to_default()
        return self.layout(biz_key, store)


_service: Optional[TableService] = None


def build_table_service(
    session_factory: Callable[[], Session] = SessionLocal,
) -> TableService:
    return TableService(
        client=UpstreamClient(),
        storage=SqlColumnStorage(session_factory),
    )


def get_table_service() -> TableService:
    """Dependency returning the shared table service."""
    global _service
    if _service is None:
        _service = build_table_service()
    return _service


async def shutdown_table_service() -> None:
    global _service
    if _service is not None:
        await _service.close()
        _service = None
