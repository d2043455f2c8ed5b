"""HTTP surface (FastAPI)."""

from .app import create_app
from .errors import status_code_for

__all__ = ["create_app", "status_code_for"]
