#!/usr/bin/env python3
"""Create or update the PocketBase tasks collection with owner-scoped rules."""

import asyncio

from tasksync.core.config import settings
from tasksync.core.schema import sync_schema


async def main() -> None:
    admin_email = settings.require_credential("pocketbase_admin_email", "PocketBase admin email")
    admin_password = settings.require_credential("pocketbase_admin_password", "PocketBase admin password")

    await sync_schema(
        admin_email=admin_email,
        admin_password=admin_password,
    )


if __name__ == "__main__":
    asyncio.run(main())
