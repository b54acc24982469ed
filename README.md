# echidnalog

Building blocks for low-latency network services on Linux: an append-only
log kept in memory-mapped pages, cursors for reading it, and small helpers
for files, CPUs, sockets, configuration trees and HTTP/2 framing.

## Modules

- **`echidnalog.stream`**
  - `LogRWStream`: an append-only log stored in memory-mapped pages. It is
    backed by a file (`MMapShared`, read through an `LRUCache`) or by
    anonymous memory (`MMapAnon`, read through a `OneShotCache`). It offers
    `push`, `readv` (read from a descriptor into the log), `peek`, `find`,
    `pop`, `unmask` (XOR with a repeating mask, in place), `writev`
    (write a range to a descriptor without copying), zero-copy write and
    read views, `iter_range`, and `set_position`. `pop` returns `None`
    unless every requested byte has been written.
  - `PositionedStream`: one read cursor over a log, starting at its
    current end, with `pop`, `skip`, `backup`, `reset_position` and
    `writev` that move the cursor.
  - `MultiPositionedStreamLog`: a log shared by many readers, each
    registered under a file descriptor with `register`, `mark`,
    `mark_end` and `unregister`; `writev` sends a reader its unread bytes.
  - `LogStreamWriter`: a `write`/`put` front end for anything with `push`;
    strings are UTF-8 encoded.
- **`echidnalog.pages`**: the layer beneath the streams. `WriteBuffer`
  appends page by page (raising `StoreError` when read-only or when a seek
  fails), `ReadPage` addresses one mapped page by absolute offsets, and
  `OneShotCache` and `LRUCache` hold `CachedPage` entries.
- **`echidnalog.fileutil`**: `mkdir`, `make_temp` (returns `(fd, path)`),
  `exists`, `get_size`, `truncate`, `seek_set`, `seek_end`, and the two
  mapping providers `MMapShared` and `MMapAnon`.
- **`echidnalog.mem`**: `page_size`, `cpu_count`, and CPU affinity with
  `set_cpu` and `set_cpus`. `parse_cpus` reads lists such as `"0-3,6"`,
  `"all"` or `"!2"` and raises `ValueError` for malformed lists or CPUs
  beyond the configured count.
- **`echidnalog.config`**: `Config`, a tree of maps, sequences and scalars
  (`ConfigType`) built by adding nodes one at a time. In a map, scalars
  alternate between key and value.
- **`echidnalog.net`**: `connect_stream`, non-blocking TCP, UDP and Unix
  socket constructors, socket option helpers (`set_no_delay`,
  `set_reuse_addr`, `set_reuse_port`, buffer sizes, `get_tcp_fast_open`),
  and `interface_ipv4` to look up an interface's IPv4 address.
- **`echidnalog.h2frames`**: HTTP/2 enums (`FrameType`, `Setting`,
  `ErrorCode`, `FrameFlag`, `StreamState`, `ConnectionState`), the 9-byte
  `FrameHeader` with `pack`/`unpack`, `check_preface`, and the empty
  acknowledgement frames `settings_ack_frame` and `ping_ack_frame`.
- **`echidnalog.h2parse`**: `parse_settings`, `parse_goaway`,
  `parse_window_update`, and gRPC message framing with `grpc_message` and
  `parse_grpc_prefix`.

## Installation

```
pip install .
```

Tests:

```
pip install ".[test]"
pytest
```

## Examples

An anonymous in-memory log:

```python
from echidnalog.fileutil import MMapAnon
from echidnalog.mem import page_size
from echidnalog.pages import OneShotCache
from echidnalog.stream import LogRWStream, PositionedStream

log = LogRWStream(page_size(), 0, -1, True, provider=MMapAnon, cache=OneShotCache)
log.push(b"hello,world")

assert log.find(0, ord(",")) == 5
assert log.pop(0, 5) == b"hello"

reader = PositionedStream(log)   # starts at the current end
log.push(b"!")
assert reader.pop(1) == b"!"
```

A configuration tree:

```python
from echidnalog.config import Config

root = Config.map()
root.add(Config.scalar("port"))
root.add(Config.scalar("9988"))
assert root.get_value("port") == "9988"
assert root.get_value("host", "localhost") == "localhost"
```

HTTP/2 frame headers:

```python
from echidnalog.h2frames import FrameFlag, FrameHeader, FrameType, settings_ack_frame

header = FrameHeader(FrameType.SETTINGS, flags=FrameFlag.ACK)
assert header.pack() == settings_ack_frame()
assert FrameHeader.unpack(header.pack()) == header
```

## What it does not do

- There is no HTTP/2 connection handler or gRPC server: the package encodes
  and decodes frame headers, control-frame payloads and gRPC message
  prefixes, but does not run connections, compress or decompress headers
  (HPACK), or dispatch requests.
- `Config` is built node by node; the package reads no configuration
  files itself.
- There is no event loop; the socket helpers only create and configure
  sockets.

The library runs on Linux. It relies on `mmap`, `os.sched_setaffinity`, and
socket options such as `SO_REUSEPORT` and `TCP_FASTOPEN`.