"""HTTP surface of the integration gateway (FastAPI)."""

from lexgate.api.app import create_app

__all__ = ["create_app"]
