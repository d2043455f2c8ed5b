from . import admin, status, webhooks

__all__ = ["admin", "status", "webhooks"]
