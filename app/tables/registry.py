"""Registered table domains, looked up by business key."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from app.services.upstream_client import UpstreamClient
from app.tables import activities, user_applications
from smarttable.local_query import LocalQueryOptions
from smarttable.query_state import TableQuery
from smarttable.types import ColumnPreset, ListResult

ACTIVITY_LIST_PATH = "/activity/searchAll"
USER_APPLICATIONS_PATH = "/activity/usernameApplications"

FetcherFactory = Callable[
    [UpstreamClient, Mapping[str, Any]],
    Callable[[TableQuery], Awaitable[ListResult]],
]


@dataclass(frozen=True)
class TableDefinition:
    """
    Everything the service needs to serve one logical table.

    `params` names the upstream parameters a caller must supply (for
    example the username whose applications are listed); they are part
    of the fetch signature but never of the local query.
    """

    biz_key: str
    title: str
    presets: Sequence[ColumnPreset]
    options: LocalQueryOptions
    build_fetcher: FetcherFactory
    filename_base: str
    params: Sequence[str] = field(default_factory=tuple)
    map_row: Optional[Callable[[Any, int], Any]] = None

    def missing_params(self, params: Mapping[str, Any]) -> List[str]:
        return [name for name in self.params if not params.get(name)]


def _activity_fetcher(client: UpstreamClient, params: Mapping[str, Any]):
    username = params.get("username")

    async def fetcher(query: TableQuery) -> ListResult:
        if username:
            listing, mine = await asyncio.gather(
                client.fetch_list(ACTIVITY_LIST_PATH, payload={}),
                client.fetch_list(USER_APPLICATIONS_PATH, payload={"username": username}),
            )
            rows = activities.merge_enroll_rows(listing.list, mine.list)
        else:
            listing = await client.fetch_list(ACTIVITY_LIST_PATH, payload={})
            rows = activities.merge_enroll_rows(listing.list, [])
        return ListResult(list=rows, total=len(rows))

    return fetcher


def _user_applications_fetcher(client: UpstreamClient, params: Mapping[str, Any]):
    return client.make_fetcher(
        USER_APPLICATIONS_PATH, payload={"username": params["username"]}
    )


TABLES: Dict[str, TableDefinition] = {
    activities.BIZ_KEY: TableDefinition(
        biz_key=activities.BIZ_KEY,
        title="Activity registration",
        presets=activities.PRESETS,
        options=activities.OPTIONS,
        build_fetcher=_activity_fetcher,
        filename_base="activities",
        map_row=activities.export_row,
    ),
    user_applications.BIZ_KEY: TableDefinition(
        biz_key=user_applications.BIZ_KEY,
        title="User applications",
        presets=user_applications.PRESETS,
        options=user_applications.OPTIONS,
        build_fetcher=_user_applications_fetcher,
        filename_base="user-applications",
        params=("username",),
        map_row=user_applications.export_row,
    ),
}


def get_table(biz_key: str) -> Optional[TableDefinition]:
    return TABLES.get(biz_key)
