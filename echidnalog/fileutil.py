"""File helpers and memory-mapping providers for page-backed logs."""

from __future__ import annotations

import mmap
import os
import tempfile

__all__ = [
    "mkdir",
    "make_temp",
    "exists",
    "get_size",
    "truncate",
    "seek_set",
    "seek_end",
    "MMapShared",
    "MMapAnon",
]

_POPULATE = getattr(mmap, "MAP_POPULATE", 0)


def mkdir(path, mode=0o777, ignore_last=False):
    """Create every directory along ``path``, ignoring errors.

    With ``ignore_last`` the final component is treated as a file name and
    is not created.
    """
    text = os.fspath(path)
    components = [part for part in text.split("/") if part]
    if ignore_last and components:
        components.pop()
    built = "/" if text.startswith("/") else ""
    for component in components:
        built = os.path.join(built, component) if built else component
        try:
            os.mkdir(built, mode)
        except OSError:
            pass


def make_temp(prefix):
    """Create a unique temporary file named ``<prefix>-XXXXXX``.

    Returns ``(fd, path)``; the caller must close the descriptor.
    """
    return tempfile.mkstemp(prefix=f"{prefix}-", dir=tempfile.gettempdir())


def exists(path):
    """Return whether ``path`` can be stat'ed."""
    try:
        os.stat(path)
    except OSError:
        return False
    return True


def get_size(fd):
    """Return the size in bytes of the file open on ``fd``."""
    return os.fstat(fd).st_size


def truncate(fd, size):
    """Set the size of the file open on ``fd``."""
    os.ftruncate(fd, size)


def seek_set(fd, offset):
    """Move the file position to ``offset``; return the new position."""
    return os.lseek(fd, offset, os.SEEK_SET)


def seek_end(fd):
    """Move the file position to the end; return the new position."""
    return os.lseek(fd, 0, os.SEEK_END)


def _release(page):
    if page is None:
        return
    try:
        page.close()
    except BufferError:
        # Views into the page are still alive; it is freed once they go.
        pass


class MMapShared:
    """Maps regions of a real file shared with the kernel page cache."""

    @staticmethod
    def map_write(fd, offset, length):
        return mmap.mmap(
            fd,
            length,
            flags=mmap.MAP_SHARED | _POPULATE,
            prot=mmap.PROT_READ | mmap.PROT_WRITE,
            offset=offset,
        )

    @staticmethod
    def map_read(fd, offset, length):
        return mmap.mmap(
            fd,
            length,
            flags=mmap.MAP_SHARED | _POPULATE,
            prot=mmap.PROT_READ,
            offset=offset,
        )

    @staticmethod
    def unmap(page):
        _release(page)

    @staticmethod
    def seek_set(fd, offset):
        return seek_set(fd, offset)

    @staticmethod
    def truncate(fd, size):
        truncate(fd, size)

    @staticmethod
    def get_size(fd):
        return get_size(fd)


class MMapAnon:
    """Maps private anonymous memory; the descriptor and offset are ignored."""

    @staticmethod
    def map_write(fd, offset, length):
        return mmap.mmap(
            -1,
            length,
            flags=mmap.MAP_PRIVATE | _POPULATE,
            prot=mmap.PROT_READ | mmap.PROT_WRITE,
        )

    @staticmethod
    def map_read(fd, offset, length):
        return mmap.mmap(
            -1,
            length,
            flags=mmap.MAP_PRIVATE | _POPULATE,
            prot=mmap.PROT_READ,
        )

    @staticmethod
    def unmap(page):
        _release(page)

    @staticmethod
    def seek_set(fd, offset):
        return seek_set(fd, offset)

    @staticmethod
    def truncate(fd, size):
        truncate(fd, size)

    @staticmethod
    def get_size(fd):
        return get_size(fd)