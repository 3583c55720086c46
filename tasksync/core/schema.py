"""PocketBase schema management for the tasks collection (code-first approach)."""

import logging
from typing import Any

import httpx
from pocketbase import PocketBase
from pocketbase.client import ClientResponseError

from tasksync.core.config import settings


logger = logging.getLogger(__name__)


# Row-level ownership: a record is only visible to and writable by its owner
OWNER_RULE = "owner = @request.auth.id"
CREATE_RULE = '@request.auth.id != "" && @request.body.owner = @request.auth.id'

# API rule keys that can be set on collections
_API_RULE_KEYS = ("listRule", "viewRule", "createRule", "updateRule", "deleteRule")


def get_tasks_collection_schema(*, collection_name: str, users_collection_id: str) -> dict[str, Any]:
    """Get the expected schema for the tasks collection.

    PocketBase v0.23+ uses 'fields' with flattened options, and relation
    fields need the actual collection id of the users collection.
    """
    return {
        "name": collection_name,
        "type": "base",
        "system": False,
        "listRule": OWNER_RULE,
        "viewRule": OWNER_RULE,
        "createRule": CREATE_RULE,
        "updateRule": OWNER_RULE,
        "deleteRule": OWNER_RULE,
        "fields": [
            {"name": "title", "type": "text", "required": True},
            {"name": "description", "type": "text", "required": False},
            {
                "name": "priority",
                "type": "select",
                "required": False,
                "values": ["low", "medium", "high"],
                "maxSelect": 1,
            },
            {
                "name": "status",
                "type": "select",
                "required": False,
                "values": ["pending", "in-progress", "completed"],
                "maxSelect": 1,
            },
            {
                "name": "owner",
                "type": "relation",
                "required": True,
                "collectionId": users_collection_id,
                "cascadeDelete": True,
                "maxSelect": 1,
            },
            {"name": "created", "type": "autodate", "onCreate": True, "onUpdate": False},
            {"name": "updated", "type": "autodate", "onCreate": True, "onUpdate": True},
        ],
        "indexes": [f"CREATE INDEX idx_{collection_name}_owner ON {collection_name} (owner, created)"],
    }


def verify_owner_rules(collection: dict[str, Any]) -> list[str]:
    """Return the API rule keys that do not restrict access to the authenticated owner.

    A rule of None is superuser-only and counts as restricted; an empty string
    is public.
    """
    unscoped = []
    for rule_key in _API_RULE_KEYS:
        rule = collection.get(rule_key)
        if rule is None:
            continue
        if "@request.auth.id" not in rule:
            unscoped.append(rule_key)
    return unscoped


async def _collection_exists(*, client: httpx.AsyncClient, collection_name: str) -> bool:
    """Check if a collection exists in PocketBase."""
    try:
        response = await client.get(f"/api/collections/{collection_name}")
        return response.is_success
    except httpx.HTTPError:
        return False


async def _get_collection(*, client: httpx.AsyncClient, collection_name: str) -> dict[str, Any]:
    """Fetch a collection definition."""
    response = await client.get(f"/api/collections/{collection_name}")
    response.raise_for_status()
    return response.json()


def _merge_fields(
    schema: dict[str, Any],
    current: dict[str, Any],
) -> tuple[list[dict[str, Any]], list[str], list[str]]:
    """Merge desired fields with existing fields.

    Returns:
        Tuple of (merged_fields, fields_updated, fields_added).
    """
    desired_fields = {f["name"]: f for f in schema.get("fields", [])}
    existing_fields = {f["name"]: f for f in current.get("fields", [])}

    merged_fields = []
    fields_updated = []
    fields_added = []

    for field_name, existing_field in existing_fields.items():
        if field_name in desired_fields:
            # Keep the server-assigned field id so PocketBase updates in place
            merged = {**desired_fields[field_name]}
            if "id" in existing_field:
                merged["id"] = existing_field["id"]
            merged_fields.append(merged)
            fields_updated.append(field_name)
        else:
            merged_fields.append(existing_field)

    for field_name, desired_field in desired_fields.items():
        if field_name not in existing_fields:
            merged_fields.append(desired_field)
            fields_added.append(field_name)

    return merged_fields, fields_updated, fields_added


def _get_rules_to_update(
    schema: dict[str, Any],
    current: dict[str, Any],
) -> dict[str, str | None]:
    """Get API rules that need updating."""
    rules_to_update: dict[str, str | None] = {}
    for rule_key in _API_RULE_KEYS:
        if rule_key in schema and schema[rule_key] != current.get(rule_key):
            rules_to_update[rule_key] = schema[rule_key]
    return rules_to_update


async def _update_collection(
    *,
    client: httpx.AsyncClient,
    schema: dict[str, Any],
) -> None:
    """Update the tasks collection so fields and ownership rules match the schema."""
    collection_name = schema["name"]
    current = await _get_collection(client=client, collection_name=collection_name)

    merged_fields, fields_updated, fields_added = _merge_fields(schema, current)
    rules_to_update = _get_rules_to_update(schema, current)

    if not fields_added and not rules_to_update:
        logger.info("Collection %s schema is already up to date", collection_name)
        return

    update_payload: dict[str, Any] = {"fields": merged_fields, **rules_to_update}
    existing_indexes = set(current.get("indexes", []))
    new_indexes = [idx for idx in schema.get("indexes", []) if idx not in existing_indexes]
    if new_indexes:
        update_payload["indexes"] = list(existing_indexes) + new_indexes

    response = await client.patch(f"/api/collections/{collection_name}", json=update_payload)
    response.raise_for_status()
    logger.info(
        "Updated collection %s: added %s, updated %s, rules %s",
        collection_name,
        fields_added,
        fields_updated,
        list(rules_to_update),
    )


def _admin_token(*, url: str, admin_email: str, admin_password: str) -> str:
    """Authenticate as superuser with the PocketBase SDK and return the token."""
    client = PocketBase(url)
    try:
        client.admins.auth_with_password(admin_email, admin_password)
    except ClientResponseError as e:
        logger.error("Failed to authenticate as admin: %s", e)
        raise
    logger.info("Successfully authenticated as admin")
    return client.auth_store.token


async def sync_schema(
    pocketbase_url: str | None = None,
    admin_email: str | None = None,
    admin_password: str | None = None,
) -> None:
    """Create or update the tasks collection with owner-scoped rules (idempotent)."""
    logger.info("Starting PocketBase schema sync...")

    url = pocketbase_url or settings.pocketbase_url
    token = _admin_token(
        url=url,
        admin_email=admin_email or settings.require_credential("pocketbase_admin_email", "PocketBase admin email"),
        admin_password=admin_password
        or settings.require_credential("pocketbase_admin_password", "PocketBase admin password"),
    )

    async with httpx.AsyncClient(base_url=url, timeout=settings.request_timeout_seconds) as http_client:
        http_client.headers["Authorization"] = f"Bearer {token}"

        users = await _get_collection(client=http_client, collection_name=settings.users_collection)
        schema = get_tasks_collection_schema(
            collection_name=settings.tasks_collection,
            users_collection_id=users["id"],
        )

        if not await _collection_exists(client=http_client, collection_name=schema["name"]):
            response = await http_client.post("/api/collections", json=schema)
            response.raise_for_status()
            logger.info("Created collection: %s", schema["name"])
        else:
            await _update_collection(client=http_client, schema=schema)

    logger.info("PocketBase schema sync complete")


async def check_owner_rules(
    pocketbase_url: str | None = None,
    admin_email: str | None = None,
    admin_password: str | None = None,
) -> list[str]:
    """Fetch the live tasks collection and report rules that are not owner-scoped."""
    url = pocketbase_url or settings.pocketbase_url
    token = _admin_token(
        url=url,
        admin_email=admin_email or settings.require_credential("pocketbase_admin_email", "PocketBase admin email"),
        admin_password=admin_password
        or settings.require_credential("pocketbase_admin_password", "PocketBase admin password"),
    )

    async with httpx.AsyncClient(base_url=url, timeout=settings.request_timeout_seconds) as http_client:
        http_client.headers["Authorization"] = f"Bearer {token}"
        collection = await _get_collection(client=http_client, collection_name=settings.tasks_collection)

    unscoped = verify_owner_rules(collection)
    if unscoped:
        logger.warning(
            "Tasks collection rules are not owner-scoped",
            extra={"collection": settings.tasks_collection, "rules": unscoped},
        )
    else:
        logger.info("Tasks collection rules are owner-scoped", extra={"collection": settings.tasks_collection})
    return unscoped
