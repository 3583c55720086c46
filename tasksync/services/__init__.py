from tasksync.services import (
    auth_service,
    sync_service,
    task_service,
    view_service,
)


__all__ = [
    "auth_service",
    "sync_service",
    "task_service",
    "view_service",
]
