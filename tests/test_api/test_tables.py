"""Tests for table endpoints."""

import asyncio

import pytest
from httpx import AsyncClient

from smarttable.query_state import TableQuery
from tests.fake_upstream import ACTIVITIES


@pytest.mark.asyncio
class TestTableQueryEndpoints:
    """Test listing, querying and exporting tables."""

    async def test_list_tables(self, client: AsyncClient):
        """Registered tables should be listed."""
        response = await client.get("/api/v1/tables/")

        assert response.status_code == 200
        keys = [table["biz_key"] for table in response.json()]
        assert keys == ["activity.enroll", "rbac.user.applications"]

    async def test_query_page(self, client: AsyncClient):
        """A query should return one page, the total and visible columns."""
        response = await client.post(
            "/api/v1/tables/activity.enroll/query",
            json={"page": 1, "pageSize": 2, "sorter": {"field": "id", "order": "desc"}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == len(ACTIVITIES)
        assert [row["id"] for row in data["list"]] == [3, 2]
        column_keys = [column["key"] for column in data["columns"]]
        assert "id" not in column_keys
        assert column_keys[0] == "name"

    async def test_query_keyword_and_filters(self, client: AsyncClient):
        """Keyword and filters should narrow the total."""
        response = await client.post(
            "/api/v1/tables/activity.enroll/query",
            json={"keyword": "lecture", "filters": {"type": [1]}},
        )

        data = response.json()
        assert data["total"] == 2
        assert {row["id"] for row in data["list"]} == {1, 3}

    async def test_query_with_username_derives_apply_state(self, client: AsyncClient):
        """A username should merge that user's applications."""
        response = await client.post(
            "/api/v1/tables/activity.enroll/query",
            json={"params": {"username": "20230001"}, "filters": {"applyState": "APPLIED"}},
        )

        data = response.json()
        assert [row["id"] for row in data["list"]] == [1]

    async def test_user_applications_require_username(self, client: AsyncClient):
        """The applications table should reject a missing username."""
        response = await client.post("/api/v1/tables/rbac.user.applications/query", json={})

        assert response.status_code == 400

    async def test_user_applications(self, client: AsyncClient, upstream):
        """The applications table should query by username."""
        response = await client.post(
            "/api/v1/tables/rbac.user.applications/query",
            json={"params": {"username": "20230001"}, "sorter": {"field": "time", "order": "ascend"}},
        )

        assert response.status_code == 200
        assert [row["id"] for row in response.json()["list"]] == [12, 11]
        assert upstream.calls_to("/activity/usernameApplications") == 1

    async def test_unknown_table(self, client: AsyncClient):
        """Unknown business keys should be 404."""
        response = await client.post("/api/v1/tables/nope/query", json={})

        assert response.status_code == 404

    async def test_invalid_page_rejected(self, client: AsyncClient):
        """Non-positive pages should fail validation."""
        response = await client.post(
            "/api/v1/tables/activity.enroll/query", json={"page": 0}
        )

        assert response.status_code == 422

    async def test_upstream_failure(self, client: AsyncClient, upstream):
        """Upstream failures should be 502 with the error code."""
        upstream.status_code = 500

        response = await client.post("/api/v1/tables/activity.enroll/query", json={})

        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "SERVER_ERROR"

    async def test_upstream_business_error(self, client: AsyncClient, upstream):
        """A non-200 envelope should be 502 with BIZ_ERROR."""
        upstream.envelope_code = 403

        response = await client.post("/api/v1/tables/activity.enroll/query", json={})

        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "BIZ_ERROR"

    async def test_concurrent_queries_share_fetch(self, table_service, upstream):
        """Simultaneous queries of one table should hit the upstream once."""
        results = await asyncio.gather(
            table_service.query("activity.enroll", TableQuery(page=1, page_size=1), {}),
            table_service.query("activity.enroll", TableQuery(page=2, page_size=1), {}),
        )

        assert upstream.calls_to("/activity/searchAll") == 1
        assert [r["list"][0]["id"] for r in results] == [1, 2]

    async def test_export(self, client: AsyncClient):
        """Export should return every matching row as a CSV attachment."""
        response = await client.post(
            "/api/v1/tables/activity.enroll/export",
            json={"page": 1, "pageSize": 1, "filters": {"type": 1}},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert "activities-" in response.headers["content-disposition"]

        text = response.content.decode("utf-8-sig")
        lines = text.split("\r\n")
        assert lines[0].startswith("Name,Department,Type")
        assert len(lines) == 3
        assert "Lecture" in lines[1]

    async def test_export_uses_visible_columns(self, client: AsyncClient):
        """Hidden columns should not be exported."""
        await client.put(
            "/api/v1/tables/activity.enroll/columns/visible",
            json={"keys": ["location", "name"]},
        )

        response = await client.post(
            "/api/v1/tables/activity.enroll/export",
            json={"filename": "venues"},
        )

        lines = response.content.decode("utf-8-sig").split("\r\n")
        assert lines[0] == "Name,Location"
        assert lines[2] == 'Volunteer Day,"Campus Gate, East"'
        assert "venues.csv" in response.headers["content-disposition"]

    async def test_export_nothing(self, client: AsyncClient):
        """An empty match should be 204."""
        response = await client.post(
            "/api/v1/tables/activity.enroll/export", json={"keyword": "no such activity"}
        )

        assert response.status_code == 204


@pytest.mark.asyncio
class TestColumnEndpoints:
    """Test column layout endpoints."""

    async def test_default_layout(self, client: AsyncClient):
        """The default layout should follow the presets."""
        response = await client.get("/api/v1/tables/activity.enroll/columns")

        assert response.status_code == 200
        data = response.json()
        assert data["visible_keys"][0] == "name"
        assert "id" not in data["visible_keys"]
        assert data["updated_at"] is None

    async def test_set_width(self, client: AsyncClient):
        """Widths should be persisted and clamped."""
        response = await client.put(
            "/api/v1/tables/activity.enroll/columns/name/width", json={"width": 12}
        )

        assert response.status_code == 200
        name = next(c for c in response.json()["columns"] if c["key"] == "name")
        assert name["width"] == 80

        again = await client.get("/api/v1/tables/activity.enroll/columns")
        name = next(c for c in again.json()["columns"] if c["key"] == "name")
        assert name["width"] == 80

    async def test_set_width_unknown_column(self, client: AsyncClient):
        """Unknown columns should be 404."""
        response = await client.put(
            "/api/v1/tables/activity.enroll/columns/nope/width", json={"width": 120}
        )

        assert response.status_code == 404

    async def test_set_width_invalid(self, client: AsyncClient):
        """Non-positive widths should fail validation."""
        response = await client.put(
            "/api/v1/tables/activity.enroll/columns/name/width", json={"width": -3}
        )

        assert response.status_code == 422

    async def test_order_and_reset(self, client: AsyncClient):
        """Order changes should persist until reset."""
        response = await client.put(
            "/api/v1/tables/rbac.user.applications/columns/order",
            json={"keys": ["state", "activityName"]},
        )

        assert [c["key"] for c in response.json()["columns"]][:3] == ["state", "activityName", "type"]

        reset = await client.delete("/api/v1/tables/rbac.user.applications/columns")
        assert [c["key"] for c in reset.json()["columns"]][:2] == ["activityName", "type"]
        assert reset.json()["updated_at"] is None

    async def test_health(self, client: AsyncClient):
        """Health endpoint should respond."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
