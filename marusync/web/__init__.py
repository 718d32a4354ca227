"""
HTTP server for MaruSync.
"""

from .server import WebServer

__all__ = ["WebServer"]
