"""maildispatch -- HTTP boundary."""

from maildispatch.api.server import create_app

__all__ = ["create_app"]
