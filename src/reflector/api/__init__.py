"""HTTP surface for the reflection engine."""

from .app import create_app

__all__ = ["create_app"]
