"""Readable and writable page logs, and per-reader positions over them."""

from __future__ import annotations

import os

from echidnalog.fileutil import MMapAnon, MMapShared
from echidnalog.pages import LRUCache, OneShotCache, StoreError, WriteBuffer

__all__ = [
    "UNBOUNDED",
    "LogRWStream",
    "PositionedStream",
    "MultiPositionedStreamLog",
    "LogStreamWriter",
]

UNBOUNDED = 2**64 - 1


def _nbytes(data):
    with memoryview(data) as view:
        return view.nbytes


class LogRWStream:
    """An append-only log of mapped pages that can be read at any offset.

    Writes go through a :class:`WriteBuffer`; reads go through a page cache.
    An anonymous log keeps its pages in memory and hands each one to the
    cache as it is allocated; a file-backed log maps file pages on demand.
    """

    def __init__(self, page_size, offset, fd, anonymous, max_size=UNBOUNDED,
                 cache=None, cache_size=16, provider=None):
        if not anonymous and fd <= 0:
            raise ValueError("a file-backed log needs an open file descriptor")
        if provider is None:
            provider = MMapAnon if anonymous else MMapShared
        if cache is None:
            cache = OneShotCache if anonymous else LRUCache
        self.page_size = page_size
        self.cache_size = cache_size
        self._available = offset
        self._max_size = max_size
        self._cache = cache(page_size, cache_size, fd, provider=provider)
        self._writer = WriteBuffer(page_size, offset, fd, read_only=False,
                                   anonymous=anonymous, provider=provider)
        self._writer.set_allocate_callback(self._cache.add_page)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self._writer.close()
        close = getattr(self._cache, "close", None)
        if close is not None:
            close()

    def _pages_from(self, start):
        last = (self._available - 1) // self.page_size
        return range(start // self.page_size, last + 1)

    def _entry(self, offset, evict):
        lookup = self._cache.find_page if evict else self._cache.peek_page
        try:
            return lookup(offset)
        except (OSError, ValueError):
            return None

    def iter_range(self, begin, end):
        """Yield the byte at each offset in ``[begin, end)`` (None if unreadable)."""
        for offset in range(begin, end):
            yield self.peek(offset)

    def available(self):
        return self._available

    def is_empty(self):
        return self._available == 0

    def free(self):
        return self.capacity() - self.available()

    def capacity(self):
        return self._max_size

    def zero_copy_write_next(self):
        """Return a writable view of the rest of the current page.

        The whole view counts as written; give back what is unused with
        :meth:`zero_copy_write_backup`.
        """
        view = self._writer.zero_copy_next()
        self._available += len(view)
        return view

    def zero_copy_write_backup(self, length):
        self._writer.backup(length)
        self._available -= length

    def push(self, data):
        """Append ``data`` to the log."""
        self._writer.push(data)
        self._available += _nbytes(data)

    def readv(self, fd, reader=os.readv):
        """Read from ``fd`` straight into the log; return the byte count."""
        count = self._writer.readv(fd, reader)
        if count > 0:
            self._available += count
        return count

    def peek(self, offset):
        """Return the byte at ``offset``, or None if it is not readable."""
        if offset >= self._available:
            return None
        entry = self._entry(offset, evict=False)
        return None if entry is None else entry.page.peek(offset)

    def zero_copy_read_next(self, offset):
        """Return a view from ``offset`` to the end of its page, or None."""
        if offset >= self._available:
            return None
        entry = self._entry(offset, evict=False)
        return None if entry is None else entry.page.zero_copy_peek(offset)

    def unmask(self, start, length, mask):
        """XOR ``length`` bytes from ``start`` in place with a repeating mask."""
        mask = bytes(mask)
        done = 0
        mask_pos = 0
        for index in self._pages_from(start):
            page_start = index * self.page_size
            entry = self._entry(page_start, evict=False)
            if entry is None:
                continue
            result = entry.page.unmask(max(start, page_start), mask_pos, mask,
                                       length - done)
            if result is None:
                return False
            count, mask_pos = result
            done += count
            if done == length:
                return True
        return False

    def find(self, start, value):
        """Return the offset of the first ``value`` at or after ``start``."""
        for index in self._pages_from(start):
            page_start = index * self.page_size
            entry = self._entry(page_start, evict=True)
            if entry is None:
                continue
            found = entry.page.find(max(start, page_start), value)
            if found is not None:
                return found
        return None

    def pop(self, start, size):
        """Copy ``size`` bytes from ``start``; None if they are not all written."""
        if start >= self._available or start + size > self._available:
            return None
        chunks = []
        done = 0
        for index in self._pages_from(start):
            page_start = index * self.page_size
            entry = self._entry(page_start, evict=True)
            if entry is None:
                continue
            chunk = entry.page.pop(max(start, page_start), size - done)
            if chunk is None:
                return None
            chunks.append(chunk)
            done += len(chunk)
            if done == size:
                return b"".join(chunks)
        return None

    def writev(self, start, size, fd, writer=os.writev):
        """Write up to ``size`` bytes from ``start`` to ``fd`` without copying.

        At most ``cache_size`` pages are gathered into one call of
        ``writer(fd, buffers)``, whose result is returned.
        """
        size = min(size, self.cache_size * self.page_size)
        views = []
        queued = 0
        try:
            for index in self._pages_from(start):
                if queued >= size or len(views) >= self.cache_size:
                    break
                page_offset = (start + queued) % self.page_size
                entry = self._entry(index * self.page_size, evict=True)
                if entry is None:
                    raise StoreError(f"page {index} is not in the cache")
                count = min(size - queued, self.page_size - page_offset)
                views.append(entry.page.view(page_offset)[:count])
                queued += count
            if not views:
                return 0
            return writer(fd, views)
        finally:
            for view in views:
                view.release()

    def set_position(self, offset):
        """Continue writing at ``offset``; return whether that succeeded."""
        try:
            self._writer.set_position(offset)
        except (StoreError, OSError):
            return False
        return True


class PositionedStream:
    """Tracks one reader's position in a log, starting at its current end."""

    def __init__(self, stream):
        self._stream = stream
        self._offset = stream.available()

    def available(self):
        return self._stream.available() - self._offset

    def total_available(self):
        return self._stream.available()

    def peek(self, offset):
        """Return the byte ``offset`` bytes past the current position."""
        return self._stream.peek(self._offset + offset)

    def unmask(self, offset, length, mask):
        return self._stream.unmask(offset, length, mask)

    def find(self, start, value):
        """Find ``value`` from ``start`` past the position; return its log offset."""
        return self._stream.find(self._offset + start, value)

    def pop(self, size):
        """Copy ``size`` bytes at the position and move past them."""
        data = self._stream.pop(self._offset, size)
        if data is not None:
            self._offset += size
        return data

    def pop_at(self, offset, size):
        """Copy ``size`` bytes at absolute ``offset`` without moving."""
        return self._stream.pop(offset, size)

    def readv(self, fd, reader=os.readv):
        return self._stream.readv(fd, reader)

    def push(self, data):
        self._stream.push(data)

    def writev(self, size, fd, writer=os.writev):
        count = self._stream.writev(self._offset, size, fd, writer)
        if count > 0:
            self._offset += count
        return count

    def backup(self, size):
        if size <= self._offset:
            self._offset -= size
            return True
        return False

    def skip(self, size):
        if size <= self.available():
            self._offset += size
            return True
        return False

    def reset_position(self):
        self._offset = self._stream.available()

    def current_offset(self):
        return self._offset

    def zero_copy_read_next(self, offset):
        """Return a view at ``offset`` capped to the unread data, and move past it."""
        limit = self.available()
        view = self._stream.zero_copy_read_next(offset)
        if view is None:
            return None
        if len(view) > limit:
            view = view[:limit]
        self._offset += len(view)
        return view


class MultiPositionedStreamLog:
    """A log shared by many readers, each registered under a descriptor."""

    def __init__(self, stream):
        self._stream = stream
        self._offsets = []

    def push(self, data):
        self._stream.push(data)

    def zero_copy_write_next(self):
        return self._stream.zero_copy_write_next()

    def zero_copy_write_backup(self, length):
        self._stream.zero_copy_write_backup(length)

    def register(self, fd, offset):
        """Start a reader for ``fd`` at ``offset``."""
        if fd < 0:
            raise ValueError(f"invalid descriptor {fd}")
        if fd >= len(self._offsets):
            self._offsets.extend([None] * (fd + 1 - len(self._offsets)))
        if self._offsets[fd] is not None:
            raise ValueError(f"descriptor {fd} is already registered")
        self._offsets[fd] = offset

    def mark(self, fd, offset):
        if 0 <= fd < len(self._offsets):
            self._offsets[fd] = offset
            return True
        return False

    def mark_end(self, fd):
        return self.mark(fd, self._stream.available())

    def unregister(self, fd):
        if not 0 <= fd < len(self._offsets):
            raise KeyError(fd)
        self._offsets[fd] = None

    def _offset(self, fd):
        if 0 <= fd < len(self._offsets):
            return self._offsets[fd]
        return None

    def writev(self, size, fd, writer=os.writev):
        """Send up to ``size`` unread bytes to ``fd``; return the count sent."""
        if not 0 <= fd < len(self._offsets):
            raise KeyError(fd)
        offset = self._offsets[fd]
        if offset is None:
            return 0
        count = self._stream.writev(offset, size, fd, writer)
        if count > 0:
            self._offsets[fd] = offset + count
        return count

    def available(self, fd=None):
        """Bytes in the log, or bytes not yet read by ``fd``."""
        if fd is None:
            return self._stream.available()
        offset = self._offset(fd)
        if offset is None:
            return 0
        return self._stream.available() - offset

    def pop(self, offset, size):
        if self._stream.available() < offset:
            return None
        return self._stream.pop(offset, size)

    def is_empty(self, fd):
        offset = self._offset(fd)
        if offset is None:
            return True
        return self._stream.available() == offset

    def free(self):
        return self._stream.free()

    def iter_range(self, begin, end):
        return self._stream.iter_range(begin, end)


class LogStreamWriter:
    """A minimal text/bytes writer that appends to anything with ``push``."""

    def __init__(self, target):
        self._target = target

    def write(self, data):
        """Append ``data`` (str is UTF-8 encoded); return the bytes written."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._target.push(data)
        return _nbytes(data)

    def put(self, char):
        """Append a single byte; return its value."""
        if isinstance(char, str):
            char = char.encode("utf-8")
        if isinstance(char, int):
            value = char
        else:
            raw = bytes(char)
            if len(raw) != 1:
                raise ValueError("expected a single character")
            value = raw[0]
        self._target.push(bytes([value]))
        return value