"""Memory-mapped paged log streams with file, CPU, socket, config and HTTP/2 helpers."""

__version__ = "0.1.0"

__all__ = [
    "config",
    "fileutil",
    "h2frames",
    "h2parse",
    "mem",
    "net",
    "pages",
    "stream",
]