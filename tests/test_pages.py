import os

import pytest

from echidnalog.fileutil import MMapAnon, MMapShared, make_temp
from echidnalog.mem import page_size
from echidnalog.pages import (
    CachedPage,
    LRUCache,
    OneShotCache,
    ReadPage,
    StoreError,
    WriteBuffer,
)

PS = page_size()


@pytest.fixture
def temp_fd():
    fd, path = make_temp("coypu")
    yield fd
    os.close(fd)
    os.remove(path)


def anon_page(fill=b"\0"):
    page = MMapAnon.map_write(-1, 0, PS)
    page[:] = fill * PS
    return page


# WriteBuffer


def test_push_writes_to_file(temp_fd):
    store = WriteBuffer(PS, 0, temp_fd)
    store.push(b"foo")
    assert os.pread(temp_fd, 3, 0) == b"foo"
    assert store.position == 3
    store.close()


def test_push_many(temp_fd):
    store = WriteBuffer(PS, 0, temp_fd)
    for _ in range(10000):
        store.push(b"foo")
    assert os.pread(temp_fd, 30000, 0) == b"foo" * 10000
    assert store.position == 30000
    store.close()


def test_readv_from_pipe(temp_fd):
    store = WriteBuffer(PS, 0, temp_fd)
    rfd, wfd = os.pipe()
    try:
        assert os.write(wfd, b"abcdef") == 6
        assert store.readv(rfd, os.readv) == 6
    finally:
        os.close(rfd)
        os.close(wfd)
    assert os.pread(temp_fd, 6, 0) == b"abcdef"
    store.close()


def test_readv_many(temp_fd):
    store = WriteBuffer(PS, 0, temp_fd)
    rfd, wfd = os.pipe()
    expected = bytearray()
    total = 0
    try:
        for x in range(10000):
            chunk = f"data-{x},".encode()
            os.write(wfd, chunk)
            expected += chunk
            count = store.readv(rfd, os.readv)
            assert count > 0
            total += count
        while total < len(expected):
            total += store.readv(rfd, os.readv)
    finally:
        os.close(rfd)
        os.close(wfd)
    assert os.pread(temp_fd, len(expected), 0) == bytes(expected)
    store.close()


def test_read_only_rejects_writes(temp_fd):
    store = WriteBuffer(PS, 0, temp_fd, read_only=True)
    with pytest.raises(StoreError):
        store.push(b"foo")
    with pytest.raises(StoreError):
        store.readv(temp_fd, os.readv)
    with pytest.raises(StoreError):
        store.zero_copy_next()


def test_zero_copy_next(temp_fd):
    store = WriteBuffer(PS, 0, temp_fd)
    view = store.zero_copy_next()
    assert len(view) == PS
    view[:5] = b"hello"
    assert os.pread(temp_fd, 5, 0) == b"hello"
    view.release()
    store.close()


def test_backup_after_zero_copy(temp_fd):
    store = WriteBuffer(PS, 0, temp_fd)
    first = store.zero_copy_next()
    assert store.backup(100)
    second = store.zero_copy_next()
    assert len(second) == 100
    first.release()
    second.release()
    store.close()


def test_set_position_rewrites(temp_fd):
    store = WriteBuffer(PS, 0, temp_fd)
    store.push(b"initial")
    store.set_position(0)
    store.push(b"replaced")
    assert os.pread(temp_fd, 8, 0) == b"replaced"
    store.set_position(3)
    store.push(b"X")
    assert os.pread(temp_fd, 8, 0) == b"repXaced"
    assert store.position == 4
    store.close()


def test_anonymous_mode():
    pages = []
    store = WriteBuffer(PS, 0, -1, anonymous=True)
    store.set_allocate_callback(lambda page, offset: pages.append((page, offset)))
    store.push(b"anonymous")
    view = store.zero_copy_next()
    assert len(view) == PS - 9
    assert pages[0][1] == 0
    assert pages[0][0][:9] == b"anonymous"
    view.release()


def test_allocate_callback(temp_fd):
    offsets = []
    store = WriteBuffer(PS, 0, temp_fd)
    store.set_allocate_callback(lambda page, offset: offsets.append(offset))
    store.push(b"test")
    assert offsets == [0]
    store.push(b"x" * PS)
    assert offsets == [0, PS]
    store.close()


def test_push_across_page_boundary(temp_fd):
    store = WriteBuffer(PS, 0, temp_fd)
    store.push(b"a" * (PS - 10))
    store.push(b"b" * 100)
    assert os.pread(temp_fd, 20, PS - 10) == b"b" * 20
    assert store.position == PS + 90
    store.close()


def test_backup_zero():
    store = WriteBuffer(PS, 0, -1, anonymous=True)
    view = store.zero_copy_next()
    assert store.backup(0)
    assert store.position == PS
    view.release()


def test_backup_over_budget():
    store = WriteBuffer(PS, 0, -1, anonymous=True)
    store.push(b"hello")
    assert store.backup(6) is False
    assert store.position == 5


def test_backup_exact_position():
    pages = []
    store = WriteBuffer(PS, 0, -1, anonymous=True)
    store.set_allocate_callback(lambda page, offset: pages.append(page))
    store.push(b"hello")
    assert store.backup(5)
    store.push(b"world")
    assert pages[0][:5] == b"world"
    assert len(pages) == 1


def test_push_zero_length():
    pages = []
    store = WriteBuffer(PS, 0, -1, anonymous=True)
    store.set_allocate_callback(lambda page, offset: pages.append(page))
    store.push(b"")
    assert pages == []
    assert store.position == 0


def test_cache_page_hands_over_current_page():
    cache = OneShotCache(PS)
    store = WriteBuffer(PS, 0, -1, anonymous=True)
    store.push(b"cached")
    store.cache_page(cache)
    entry = cache.peek_page(0)
    assert entry.key == 0
    assert entry.page.pop(0, 6) == b"cached"


# ReadPage


def test_read_page_peek_and_bounds():
    page = anon_page(b"a")
    page[:5] = b"hello"
    reader = ReadPage(PS, page, PS, MMapAnon)
    assert reader.peek(PS) == ord("h")
    assert reader.peek(PS + 4) == ord("o")
    assert reader.peek(PS - 1) is None
    assert reader.peek(2 * PS) is None


def test_read_page_find():
    page = anon_page(b"a")
    page[100] = ord("X")
    reader = ReadPage(PS, page, 0, MMapAnon)
    assert reader.find(0, ord("X")) == 100
    assert reader.find(0, b"X") == 100
    assert reader.find(101, ord("X")) is None
    assert reader.find(0, ord("z")) is None


def test_read_page_pop():
    page = anon_page(b"a")
    page[PS - 3:] = b"xyz"
    reader = ReadPage(PS, page, 0, MMapAnon)
    assert reader.pop(PS - 3, 10) == b"xyz"
    assert reader.pop(0, 2) == b"aa"
    assert reader.pop(PS + 1, 1) is None


def test_read_page_unmask_single_byte_mask():
    page = anon_page(b"a")
    reader = ReadPage(PS, page, 0, MMapAnon)
    assert reader.unmask(10, 0, b"b", 20) == (20, 20)
    assert page[10:30] == bytes([ord("a") ^ ord("b")]) * 20
    assert page[9] == ord("a")
    assert page[30] == ord("a")


def test_read_page_unmask_rotating_mask():
    page = anon_page()
    reader = ReadPage(PS, page, 0, MMapAnon)
    assert reader.unmask(0, 1, b"\x01\x02", 3) == (3, 4)
    assert page[:4] == b"\x02\x01\x02\x00"


def test_read_page_unmask_clipped_to_page():
    page = anon_page()
    reader = ReadPage(PS, page, 0, MMapAnon)
    assert reader.unmask(PS - 2, 0, b"\x07", 10) == (2, 2)
    assert page[PS - 2:] == b"\x07\x07"


def test_read_page_writev():
    page = anon_page(b"a")
    page[:9] = b"writedata"
    reader = ReadPage(PS, page, 0, MMapAnon)
    rfd, wfd = os.pipe()
    try:
        assert reader.writev(0, wfd, os.writev, 9) == 9
        assert os.read(rfd, 9) == b"writedata"
        assert reader.writev(0, wfd, os.writev, PS) == 0
    finally:
        os.close(rfd)
        os.close(wfd)


def test_read_page_zero_copy_peek_and_view():
    page = anon_page(b"q")
    reader = ReadPage(PS, page, PS, MMapAnon)
    window = reader.zero_copy_peek(PS + 10)
    assert len(window) == PS - 10
    assert reader.zero_copy_peek(0) is None
    base = reader.view(4)
    assert len(base) == PS - 4
    assert bytes(base[:2]) == b"qq"
    window.release()
    base.release()


def test_read_page_map_file(temp_fd):
    os.write(temp_fd, b"A" * PS + b"B" * PS)
    reader = ReadPage(PS)
    assert reader.peek(0) is None
    reader.map(temp_fd, PS)
    assert reader.offset == PS
    assert reader.peek(PS) == ord("B")
    reader.unmap()
    assert reader.peek(PS) is None


def test_read_page_map_requires_fd():
    reader = ReadPage(PS)
    with pytest.raises(ValueError):
        reader.map(-1, 0)


# OneShotCache


def test_one_shot_find_sequence():
    cache = OneShotCache(PS, 0, -1)
    assert cache.find_page(0) is None
    for index in range(4):
        cache.add_page(anon_page(), index * PS)

    assert cache.find_page(0).key == 0
    assert cache.find_page(0).key == 0
    assert cache.find_page(2 * PS).key == 2 * PS
    assert cache.find_page(PS) is None
    assert cache.find_page(2 * PS).key == 2 * PS
    assert cache.find_page(3 * PS).key == 3 * PS
    assert cache.find_page(2 * PS) is None
    assert len(cache) == 1


def test_one_shot_peek_does_not_evict():
    cache = OneShotCache(PS)
    assert cache.peek_page(0) is None
    cache.add_page(anon_page(), 0)
    assert cache.peek_page(0).key == 0
    assert cache.peek_page(0).key == 0
    assert len(cache) == 1


def test_one_shot_multiple_pages_in_order():
    cache = OneShotCache(PS)
    for index in range(5):
        cache.add_page(anon_page(bytes([65 + index])), index * PS)
    for index in range(5):
        entry = cache.find_page(index * PS)
        assert isinstance(entry, CachedPage)
        assert entry.page.peek(index * PS) == 65 + index


def test_one_shot_evicted_page_not_found():
    cache = OneShotCache(PS)
    cache.add_page(anon_page(), 0)
    cache.add_page(anon_page(), PS)
    assert cache.find_page(PS).key == PS
    assert cache.find_page(0) is None


def test_one_shot_rejects_bad_offsets():
    cache = OneShotCache(PS)
    with pytest.raises(ValueError):
        cache.add_page(anon_page(), 1)
    cache.add_page(anon_page(), PS)
    with pytest.raises(ValueError):
        cache.add_page(anon_page(), 0)


def test_one_shot_close_empties():
    cache = OneShotCache(PS)
    cache.add_page(anon_page(), 0)
    cache.close()
    assert len(cache) == 0
    assert cache.peek_page(0) is None


# LRUCache


def _write_pages(fd, count):
    for index in range(count):
        os.write(fd, bytes([ord("a") + index]) * PS)


def test_lru_eviction_reads_every_page(temp_fd):
    _write_pages(temp_fd, 8)
    cache = LRUCache(PS, 4, temp_fd, MMapShared)
    for index in range(8):
        entry = cache.find_page(index * PS)
        assert entry.key == index
        assert entry.page.peek(index * PS) == ord("a") + index
    assert len(cache) == 4


def test_lru_hit_returns_same_entry(temp_fd):
    _write_pages(temp_fd, 1)
    cache = LRUCache(PS, 16, temp_fd)
    first = cache.find_page(0)
    for _ in range(10):
        assert cache.peek_page(5) is first
    assert len(cache) == 1


def test_lru_evicts_least_recent(temp_fd):
    _write_pages(temp_fd, 5)
    cache = LRUCache(PS, 4, temp_fd)
    entries = [cache.find_page(index * PS) for index in range(4)]
    assert cache.find_page(0) is entries[0]
    reused = cache.find_page(4 * PS)
    assert reused is entries[1]
    assert entries[1].key == 4
    assert entries[0].key == 0
    assert reused.page.peek(4 * PS) == ord("e")


def test_lru_thrash(temp_fd):
    _write_pages(temp_fd, 20)
    cache = LRUCache(PS, 4, temp_fd)
    pattern = [0, 19, 1, 18, 2, 17, 3, 16, 4, 15, 5, 14, 6, 13, 7, 12, 8, 11, 9, 10]
    for _ in range(10):
        for index in pattern:
            entry = cache.find_page(index * PS)
            assert entry.page.peek(index * PS) == ord("a") + index


def test_lru_add_page_is_ignored(temp_fd):
    _write_pages(temp_fd, 1)
    cache = LRUCache(PS, 2, temp_fd)
    cache.add_page(anon_page(), 0)
    assert len(cache) == 0


def test_lru_needs_capacity(temp_fd):
    with pytest.raises(ValueError):
        LRUCache(PS, 0, temp_fd)