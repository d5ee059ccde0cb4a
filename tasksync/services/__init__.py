from tasksync.services import notification_service, sync_bridge, user_service


__all__ = [
    "notification_service",
    "sync_bridge",
    "user_service",
]
