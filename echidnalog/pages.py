"""Page-mapped write buffers, read pages and read-page caches."""

from __future__ import annotations

import os
from collections import deque
from dataclasses import dataclass

from echidnalog.fileutil import MMapAnon, MMapShared

__all__ = [
    "StoreError",
    "WriteBuffer",
    "ReadPage",
    "CachedPage",
    "OneShotCache",
    "LRUCache",
]


class StoreError(Exception):
    """Raised when a page store cannot carry out an operation."""


def _byte_value(value):
    if isinstance(value, int):
        return value
    data = bytes(value)
    if len(data) != 1:
        raise ValueError("expected a single byte")
    return data[0]


class WriteBuffer:
    """Appends data to a log one memory-mapped page at a time.

    Pages are mapped at consecutive file offsets. For a file-backed buffer
    the file is grown one page ahead of the writer; an anonymous buffer maps
    private memory and never unmaps its pages, leaving them to a read cache.
    """

    def __init__(self, page_size, offset, fd, read_only=False, anonymous=False,
                 provider=None):
        self.page_size = page_size
        self.read_only = read_only
        self.anonymous = anonymous
        self._provider = provider or (MMapAnon if anonymous else MMapShared)
        self._fd = fd
        self._next_offset = offset
        self._page_start = offset
        self._page = None
        self._used = 0
        self._on_allocate = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    @property
    def position(self):
        """Absolute offset at which the next byte will be written."""
        return self._page_start + self._used

    def _check_writable(self):
        if self.read_only:
            raise StoreError("write buffer is read-only")

    def _ensure_page(self):
        if self._page is None or self._used == self.page_size:
            self._allocate_page()

    def _map(self, start):
        page = self._provider.map_write(self._fd, start, self.page_size)
        self._page = page
        self._page_start = start
        if self._on_allocate is not None:
            self._on_allocate(page, start)

    def _prepare_file(self, start, grow_always):
        if self.anonymous:
            return
        end = start + self.page_size
        if grow_always or self._provider.get_size(self._fd) < end:
            self._provider.truncate(self._fd, end)
        if self._provider.seek_set(self._fd, start) != start:
            raise StoreError(f"cannot seek to offset {start}")
        self._provider.unmap(self._page)
        self._page = None

    def _allocate_page(self):
        start = self._next_offset
        self._prepare_file(start, grow_always=True)
        self._map(start)
        self._used = 0
        self._next_offset = start + self.page_size

    def push(self, data):
        """Append ``data``, spilling onto new pages as they fill."""
        self._check_writable()
        with memoryview(data) as raw, raw.cast("B") as source:
            pos = 0
            total = len(source)
            while pos < total:
                self._ensure_page()
                count = min(total - pos, self.page_size - self._used)
                self._page[self._used:self._used + count] = source[pos:pos + count]
                self._used += count
                pos += count

    def readv(self, fd, reader=os.readv):
        """Read from ``fd`` into the free part of the current page.

        ``reader(fd, buffers)`` fills the buffers and returns a byte count.
        """
        self._check_writable()
        self._ensure_page()
        with memoryview(self._page) as view, view[self._used:] as window:
            count = reader(fd, [window])
        if count < 0:
            raise StoreError(f"read failed with {count}")
        self._used += count
        return count

    def cache_page(self, cache):
        """Hand the current page to a read cache."""
        cache.add_page(self._page, self._page_start)

    def set_allocate_callback(self, callback):
        """Call ``callback(page, offset)`` whenever a page is mapped."""
        self._on_allocate = callback

    def zero_copy_next(self):
        """Return a writable view of the rest of the page, counted as used.

        Unused bytes can be given back with :meth:`backup`.
        """
        self._check_writable()
        self._ensure_page()
        view = memoryview(self._page)[self._used:]
        self._used = self.page_size
        return view

    def backup(self, length):
        """Give back the last ``length`` bytes of the current page."""
        if length > self._used:
            return False
        self._used -= length
        return True

    def set_position(self, offset):
        """Continue writing at absolute ``offset``."""
        start = (offset // self.page_size) * self.page_size
        self._prepare_file(start, grow_always=False)
        self._map(start)
        self._used = offset - start
        self._next_offset = start + self.page_size

    def close(self):
        """Unmap the current page of a file-backed buffer."""
        if not self.anonymous:
            self._provider.unmap(self._page)
        self._page = None


class ReadPage:
    """One mapped page addressed by absolute log offsets."""

    def __init__(self, page_size, page=None, offset=None, provider=MMapShared):
        self.page_size = page_size
        self.page = page
        self.offset = offset
        self._provider = provider

    def _relative(self, offset, inclusive=True):
        if self.page is None or self.offset is None:
            return None
        rel = offset - self.offset
        limit = self.page_size if inclusive else self.page_size - 1
        if 0 <= rel <= limit:
            return rel
        return None

    def map(self, fd, offset):
        """Map the page of ``fd`` that starts at ``offset`` for reading."""
        if self.page is not None and self.offset == offset:
            return
        if fd < 0:
            raise ValueError("a file descriptor is required to map a page")
        self.unmap()
        self.page = self._provider.map_read(fd, offset, self.page_size)
        self.offset = offset

    def peek(self, offset):
        """Return the byte at absolute ``offset``, or None if not on this page."""
        rel = self._relative(offset, inclusive=False)
        return None if rel is None else self.page[rel]

    def zero_copy_peek(self, offset):
        """Return a view from ``offset`` to the end of the page, or None."""
        rel = self._relative(offset)
        if rel is None:
            return None
        return memoryview(self.page)[rel:]

    def find(self, start, value):
        """Return the absolute offset of ``value`` at or after ``start``."""
        if self.page is None or self.offset is None:
            return None
        rel = max(start - self.offset, 0)
        index = self.page.find(bytes([_byte_value(value)]), rel, self.page_size)
        return None if index < 0 else self.offset + index

    def pop(self, start, size):
        """Copy up to ``size`` bytes from ``start`` to the end of the page.

        Returns None if ``start`` is not on this page.
        """
        rel = self._relative(start)
        if rel is None:
            return None
        count = min(size, self.page_size - rel)
        return bytes(self.page[rel:rel + count])

    def unmask(self, start, mask_pos, mask, size):
        """XOR up to ``size`` bytes from ``start`` in place with ``mask``.

        The mask is applied from position ``mask_pos``. Returns
        ``(bytes_processed, next_mask_pos)``, or None if ``start`` is not on
        this page.
        """
        mask = bytes(mask)
        if not mask:
            raise ValueError("mask must not be empty")
        rel = self._relative(start)
        if rel is None:
            return None
        count = min(size, self.page_size - rel)
        shift = mask_pos % len(mask)
        rotated = mask[shift:] + mask[:shift]
        key = (rotated * (count // len(rotated) + 1))[:count]
        chunk = bytes(self.page[rel:rel + count])
        mixed = int.from_bytes(chunk, "big") ^ int.from_bytes(key, "big")
        self.page[rel:rel + count] = mixed.to_bytes(count, "big")
        return count, mask_pos + count

    def writev(self, start, fd, writer, size):
        """Write up to ``size`` bytes from ``start`` through ``writer``.

        ``writer(fd, buffers)`` returns the count written. Nothing is written
        (and 0 is returned) if the range does not lie inside this page.
        """
        rel = self._relative(start)
        if rel is None or start + size >= self.offset + self.page_size:
            return 0
        count = min(size, self.page_size - rel)
        if count <= 0:
            return 0
        with memoryview(self.page) as view, view[rel:rel + count] as window:
            return writer(fd, [window])

    def view(self, offset):
        """Return a view of the page from the page-relative ``offset``."""
        return memoryview(self.page)[offset:]

    def unmap(self):
        self._provider.unmap(self.page)
        self.page = None
        self.offset = None


@dataclass(eq=False)
class CachedPage:
    """A cache entry: a key (offset or page index) and its page."""

    key: int
    page: ReadPage


class OneShotCache:
    """Caches pages handed over by a writer and reads them once, in order.

    Finding a page drops every page that lies wholly before it.
    """

    def __init__(self, page_size, max_pages=0, fd=-1, provider=MMapAnon):
        self.page_size = page_size
        self._provider = provider
        self._pages = deque()

    def __len__(self):
        return len(self._pages)

    def peek_page(self, offset):
        """Return the cached page holding ``offset`` without evicting."""
        for entry in self._pages:
            if entry.key <= offset < entry.key + self.page_size:
                return entry
        return None

    def find_page(self, offset):
        """Drop pages before ``offset`` and return the page holding it."""
        pages = self._pages
        while pages and offset >= pages[0].key + self.page_size:
            pages.popleft().page.unmap()
        if pages and pages[0].key <= offset < pages[0].key + self.page_size:
            return pages[0]
        return None

    def add_page(self, page, offset):
        if offset % self.page_size:
            raise ValueError(f"offset {offset} is not page aligned")
        if self._pages and self._pages[-1].key >= offset:
            raise ValueError(f"offset {offset} is not after the last page")
        read_page = ReadPage(self.page_size, page, offset, self._provider)
        self._pages.append(CachedPage(offset, read_page))

    def close(self):
        while self._pages:
            self._pages.popleft().page.unmap()


class LRUCache:
    """Maps file pages on demand, keeping the most recently used ones."""

    def __init__(self, page_size, max_pages, fd, provider=MMapShared):
        if max_pages < 1:
            raise ValueError("an LRU cache needs room for at least one page")
        self.page_size = page_size
        self.max_pages = max_pages
        self._fd = fd
        self._provider = provider
        self._pages = deque()

    def __len__(self):
        return len(self._pages)

    def peek_page(self, offset):
        return self.find_page(offset)

    def find_page(self, offset):
        """Return the page holding ``offset``, mapping it if needed."""
        index = offset // self.page_size
        for entry in self._pages:
            if entry.key == index:
                if entry is not self._pages[0]:
                    self._pages.remove(entry)
                    self._pages.appendleft(entry)
                return entry

        if len(self._pages) == self.max_pages:
            entry = self._pages.pop()
            entry.key = index
        else:
            entry = CachedPage(index, ReadPage(self.page_size, provider=self._provider))

        entry.page.map(self._fd, index * self.page_size)
        self._pages.appendleft(entry)
        return entry

    def add_page(self, page, offset):
        """Pages are mapped on demand, so handed-over pages are ignored."""