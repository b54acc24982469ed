"""Page size, CPU counting and CPU affinity helpers."""

from __future__ import annotations

import os

import psutil

__all__ = ["page_size", "cpu_count", "parse_cpus", "set_cpu", "set_cpus"]


def page_size():
    """Return the system memory page size in bytes."""
    return os.sysconf("SC_PAGESIZE")


def cpu_count():
    """Return the number of configured logical CPUs."""
    return psutil.cpu_count(logical=True) or os.cpu_count() or 1


def parse_cpus(cpu_str):
    """Parse a CPU list such as ``"0-3,5"``, ``"all"`` or ``"!2"``.

    Returns the selected CPU numbers as a frozenset; raises ValueError on a
    malformed list or on CPUs beyond the configured count.
    """
    count = cpu_count()
    text = cpu_str.strip()
    invert = text.startswith("!")
    if invert:
        text = text[1:].strip()

    if text == "all":
        selected = set(range(count))
    else:
        if not text:
            raise ValueError(f"empty cpu list: {cpu_str!r}")
        selected = set()
        for item in text.split(","):
            low, sep, high = item.strip().partition("-")
            try:
                first = int(low)
                last = int(high) if sep else first
            except ValueError:
                raise ValueError(f"invalid cpu list: {cpu_str!r}") from None
            if first < 0 or first > last or last >= count:
                raise ValueError(f"invalid cpu range in {cpu_str!r}")
            selected.update(range(first, last + 1))

    if invert:
        selected = set(range(count)) - selected
    return frozenset(selected)


def set_cpu(cpu):
    """Pin the calling process to a single CPU."""
    if cpu >= cpu_count():
        raise ValueError(f"cpu {cpu} out of range")
    os.sched_setaffinity(0, {cpu})


def set_cpus(cpu_str):
    """Pin the calling process to the CPUs named by a CPU list."""
    os.sched_setaffinity(0, parse_cpus(cpu_str))