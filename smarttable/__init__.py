"""Smart table engine: local queries, fetch orchestration, column layout and export."""

from smarttable.column_persist import (
    ColumnStorage,
    FileColumnStorage,
    MemoryColumnStorage,
    PersistedColumn,
    PersistedColumnState,
)
from smarttable.column_prefs import ColumnPreferenceStore, EffectiveColumn
from smarttable.constants import MAX_SAFE_INTEGER, MIN_COL_WIDTH
from smarttable.exceptions import (
    CompositionError,
    ExportLimitError,
    FetchError,
    PersistenceError,
)
from smarttable.export import CsvExporter, ExportFile, build_csv
from smarttable.local_query import LocalQueryOptions, LocalQueryResult, apply_local_query
from smarttable.orchestrator import (
    DedupedFetcher,
    InFlightRegistry,
    RefreshCounter,
    TableDataOrchestrator,
    dedupe,
    fetch_all_pages,
)
from smarttable.query_state import QueryState, Sorter, TableQuery
from smarttable.resize import PointerEvent, ResizableColumnController
from smarttable.types import ColumnPreset, ListResult

__all__ = [
    "ColumnStorage",
    "FileColumnStorage",
    "MemoryColumnStorage",
    "PersistedColumn",
    "PersistedColumnState",
    "ColumnPreferenceStore",
    "EffectiveColumn",
    "MAX_SAFE_INTEGER",
    "MIN_COL_WIDTH",
    "CompositionError",
    "ExportLimitError",
    "FetchError",
    "PersistenceError",
    "CsvExporter",
    "ExportFile",
    "build_csv",
    "LocalQueryOptions",
    "LocalQueryResult",
    "apply_local_query",
    "DedupedFetcher",
    "InFlightRegistry",
    "RefreshCounter",
    "TableDataOrchestrator",
    "dedupe",
    "fetch_all_pages",
    "QueryState",
    "Sorter",
    "TableQuery",
    "PointerEvent",
    "ResizableColumnController",
    "ColumnPreset",
    "ListResult",
]
