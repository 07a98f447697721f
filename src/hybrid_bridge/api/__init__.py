"""Local query API exposing the current work and lambda."""

from hybrid_bridge.api.server import QueryApiServer

__all__ = ["QueryApiServer"]
