"""A tree of maps, sequences and scalars built from parser events."""

from __future__ import annotations

import enum

__all__ = ["ConfigType", "Config"]


class ConfigType(enum.IntEnum):
    MAP = 0
    SEQUENCE = 1
    SCALAR = 2


class Config:
    """A configuration node: a map, a sequence or a scalar string."""

    __slots__ = ("type", "value", "_maps", "_seqs", "_last_key", "_expect_value")

    def __init__(self, node_type, value=""):
        self.type = ConfigType(node_type)
        self.value = value
        self._maps = {}
        self._seqs = []
        self._last_key = ""
        self._expect_value = False

    @classmethod
    def map(cls):
        return cls(ConfigType.MAP)

    @classmethod
    def sequence(cls):
        return cls(ConfigType.SEQUENCE)

    @classmethod
    def scalar(cls, value):
        return cls(ConfigType.SCALAR, value)

    def __repr__(self):
        if self.type is ConfigType.SCALAR:
            return f"Config.scalar({self.value!r})"
        if self.type is ConfigType.MAP:
            return f"Config.map({self._maps!r})"
        return f"Config.sequence({self._seqs!r})"

    def add(self, item):
        """Add a child node.

        In a map, scalars alternate between key and value; a map or sequence
        is only accepted as a value. A key that is already present keeps its
        first value. Scalars accept no children.
        """
        if self.type is ConfigType.MAP:
            if self._expect_value:
                self._maps.setdefault(self._last_key, item)
                self._expect_value = False
            elif item.type is ConfigType.SCALAR:
                self._last_key = item.value
                self._expect_value = True
            else:
                raise ValueError("a map or sequence cannot be used as a map key")
        elif self.type is ConfigType.SEQUENCE:
            self._seqs.append(item)
        else:
            raise ValueError("a scalar cannot hold children")

    def get_value(self, key, default=None):
        """Return the value of the child under ``key``, or ``default``."""
        child = self._maps.get(key)
        return default if child is None else child.value

    def keys(self):
        return list(self._maps)

    def seq_values(self):
        return list(self._seqs)

    def seq_strings(self, name):
        """Return the scalar values of the sequence named ``name``."""
        child = self._maps.get(name)
        if child is None:
            return []
        return [node.value for node in child.seq_values()]

    def get_config(self, name):
        return self._maps.get(name)

    def has_config(self, name):
        return name in self._maps