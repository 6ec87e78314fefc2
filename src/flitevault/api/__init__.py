"""Admin HTTP API for snapshot export and restore."""

from flitevault.api.app import create_api_app

__all__ = ["create_api_app"]
