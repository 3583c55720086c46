"""Tests for the code-first PocketBase schema of the tasks collection."""

import json

import httpx
import pytest

from tasksync.core import schema as schema_module
from tasksync.core.schema import (
    CREATE_RULE,
    OWNER_RULE,
    _get_rules_to_update,
    _merge_fields,
    _update_collection,
    check_owner_rules,
    get_tasks_collection_schema,
    sync_schema,
    verify_owner_rules,
)


@pytest.fixture
def schema() -> dict:
    return get_tasks_collection_schema(collection_name="tasks", users_collection_id="_pb_users_auth_")


@pytest.mark.unit
class TestTasksSchema:
    """Tests for the desired collection definition."""

    def test_every_rule_is_owner_scoped(self, schema):
        assert verify_owner_rules(schema) == []
        assert schema["listRule"] == OWNER_RULE
        assert schema["createRule"] == CREATE_RULE

    def test_select_values_match_domain(self, schema):
        fields = {f["name"]: f for f in schema["fields"]}

        assert fields["priority"]["values"] == ["low", "medium", "high"]
        assert fields["status"]["values"] == ["pending", "in-progress", "completed"]

    def test_owner_relates_to_users(self, schema):
        owner = next(f for f in schema["fields"] if f["name"] == "owner")

        assert owner["type"] == "relation"
        assert owner["collectionId"] == "_pb_users_auth_"
        assert owner["required"] is True


@pytest.mark.unit
class TestVerifyOwnerRules:
    """Tests for verify_owner_rules."""

    def test_public_rule_is_reported(self, schema):
        schema["listRule"] = ""

        assert verify_owner_rules(schema) == ["listRule"]

    def test_superuser_only_rule_is_accepted(self, schema):
        schema["deleteRule"] = None

        assert verify_owner_rules(schema) == []

    def test_unrelated_filter_is_reported(self, schema):
        schema["viewRule"] = 'status = "pending"'
        schema["updateRule"] = "id != ''"

        assert verify_owner_rules(schema) == ["viewRule", "updateRule"]


@pytest.mark.unit
class TestSchemaMerge:
    """Tests for merging the desired schema into an existing collection."""

    def test_merge_keeps_existing_ids_and_extra_fields(self, schema):
        current = {
            "fields": [
                {"id": "text123", "name": "title", "type": "text", "required": False},
                {"id": "text999", "name": "notes", "type": "text"},
            ]
        }

        merged, updated, added = _merge_fields(schema, current)

        by_name = {f["name"]: f for f in merged}
        assert by_name["title"]["id"] == "text123"
        assert by_name["title"]["required"] is True
        assert "notes" in by_name
        assert updated == ["title"]
        assert "owner" in added

    def test_rules_to_update(self, schema):
        current = {**schema, "listRule": "", "deleteRule": None}

        assert _get_rules_to_update(schema, current) == {"listRule": OWNER_RULE, "deleteRule": OWNER_RULE}

    async def test_update_collection_patches_rules(self, schema):
        current = {**schema, "listRule": "", "indexes": []}
        patches = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json=current)
            patches.append(json.loads(request.content))
            return httpx.Response(200, json={})

        async with httpx.AsyncClient(base_url="http://pocketbase.test", transport=httpx.MockTransport(handler)) as c:
            await _update_collection(client=c, schema=schema)

        (patch,) = patches
        assert patch["listRule"] == OWNER_RULE
        assert patch["indexes"] == schema["indexes"]

    async def test_update_collection_noop_when_current(self, schema):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            return httpx.Response(200, json=schema)

        async with httpx.AsyncClient(base_url="http://pocketbase.test", transport=httpx.MockTransport(handler)) as c:
            await _update_collection(client=c, schema=schema)


@pytest.fixture
def fake_admin_api(monkeypatch: pytest.MonkeyPatch):
    """Route the schema module's httpx client to an in-process handler and skip SDK admin auth."""
    collections: dict[str, dict] = {"users": {"id": "_pb_users_auth_", "name": "users"}}
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        name = request.url.path.removeprefix("/api/collections").strip("/")
        if request.method == "POST":
            body = json.loads(request.content)
            collections[body["name"]] = body
            return httpx.Response(200, json=body)
        if name not in collections:
            return httpx.Response(404, json={"message": "Missing collection context."})
        if request.method == "PATCH":
            collections[name].update(json.loads(request.content))
        return httpx.Response(200, json=collections[name])

    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(schema_module, "_admin_token", lambda **_: "admin_token")
    monkeypatch.setattr(schema_module.httpx, "AsyncClient", client_factory)
    return collections, requests


@pytest.mark.unit
class TestSyncSchema:
    """Tests for sync_schema and check_owner_rules against a fake admin API."""

    async def test_creates_missing_collection(self, fake_admin_api):
        collections, requests = fake_admin_api

        await sync_schema(pocketbase_url="http://pocketbase.test", admin_email="a@b.c", admin_password="pw")

        assert collections["tasks"]["listRule"] == OWNER_RULE
        assert requests[0].headers["Authorization"] == "Bearer admin_token"

    async def test_is_idempotent(self, fake_admin_api):
        collections, requests = fake_admin_api
        await sync_schema(pocketbase_url="http://pocketbase.test", admin_email="a@b.c", admin_password="pw")
        requests.clear()

        await sync_schema(pocketbase_url="http://pocketbase.test", admin_email="a@b.c", admin_password="pw")

        assert all(r.method == "GET" for r in requests)

    async def test_check_owner_rules_reports_public_rules(self, fake_admin_api):
        collections, _ = fake_admin_api
        await sync_schema(pocketbase_url="http://pocketbase.test", admin_email="a@b.c", admin_password="pw")
        collections["tasks"]["viewRule"] = ""

        unscoped = await check_owner_rules(
            pocketbase_url="http://pocketbase.test", admin_email="a@b.c", admin_password="pw"
        )

        assert unscoped == ["viewRule"]
