"""A small video-sharing WSGI server with SQLite storage and media helpers."""

__version__ = "0.1.0"
__all__ = ["__version__"]