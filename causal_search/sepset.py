"""
SepsetMap: separating sets recorded during adjacency search.

Maps an unordered node pair {x, y} to the conditioning set that made x and y
independent. A missing entry (get() -> None) means no independence was found
or the pair was never tested; an empty tuple means x and y were marginally
independent. The two are different and must not be conflated.

Keys are normalized by node name. Each pair is written by exactly one
logical test sequence in FAS, so concurrent workers never write the same
key; the lock only protects the dict structure itself.
"""

import math
import threading
from typing import Dict, Iterator, Optional, Sequence, Tuple

from .graph import Node

_Key = Tuple[Node, Node]


def _key(x: Node, y: Node) -> _Key:
    if x == y:
        raise ValueError(f"A sepset needs two distinct nodes: {x}")
    return (x, y) if x < y else (y, x)


class SepsetMap:
    def __init__(self):
        self._sepsets: Dict[_Key, Tuple[Node, ...]] = {}
        self._p_values: Dict[_Key, float] = {}
        self._lock = threading.Lock()

    def set(self, x: Node, y: Node, z: Optional[Sequence[Node]]):
        """Record z as the sepset of {x, y}; z=None deletes the entry."""
        key = _key(x, y)
        with self._lock:
            if z is None:
                self._sepsets.pop(key, None)
                self._p_values.pop(key, None)
            else:
                self._sepsets[key] = tuple(z)

    def get(self, x: Node, y: Node) -> Optional[Tuple[Node, ...]]:
        return self._sepsets.get(_key(x, y))

    def set_p_value(self, x: Node, y: Node, p_value: float):
        with self._lock:
            self._p_values[_key(x, y)] = p_value

    def get_p_value(self, x: Node, y: Node) -> float:
        return self._p_values.get(_key(x, y), math.nan)

    def is_in_sepset(self, node: Node, x: Node, y: Node) -> bool:
        sepset = self.get(x, y)
        return sepset is not None and node in sepset

    def add_all(self, other: "SepsetMap"):
        for (x, y), z in other.items():
            self.set(x, y, z)
            if not math.isnan(other.get_p_value(x, y)):
                self.set_p_value(x, y, other.get_p_value(x, y))

    def copy(self) -> "SepsetMap":
        other = SepsetMap()
        other.add_all(self)
        return other

    def items(self) -> Iterator[Tuple[_Key, Tuple[Node, ...]]]:
        return iter(list(self._sepsets.items()))

    def __contains__(self, pair) -> bool:
        x, y = pair
        return _key(x, y) in self._sepsets

    def __len__(self) -> int:
        return len(self._sepsets)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SepsetMap):
            return NotImplemented
        return self._sepsets == other._sepsets

    __hash__ = None

    def __str__(self) -> str:
        lines = []
        for (x, y), z in sorted(self._sepsets.items()):
            lines.append(f"{x} _||_ {y} | {{{', '.join(n.name for n in z)}}}")
        return "\n".join(lines)
