"""
Background knowledge: forbidden and required directed edges plus tiers.

Tiers order the variables temporally. A variable in a later tier can never
cause one in an earlier tier, so the edge later -> earlier is forbidden.
A tier can additionally forbid edges among its own members.

All relations are over node names, so a Knowledge object can be shared
across graphs and searches that use the same variable names.
"""

from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from .graph import Node

NameLike = Union[Node, str]


def _name(node: NameLike) -> str:
    return node.name if isinstance(node, Node) else str(node)


class Knowledge:
    def __init__(self):
        self._forbidden: Set[Tuple[str, str]] = set()
        self._required: Set[Tuple[str, str]] = set()
        self._tiers: Dict[int, List[str]] = {}
        self._tier_of: Dict[str, int] = {}
        self._forbidden_within: Set[int] = set()

    @classmethod
    def from_dict(cls, mapping: Optional[dict]) -> "Knowledge":
        """
        Build knowledge from a config mapping:

            forbidden: [[X1, X2], ...]
            required: [[X3, X4], ...]
            tiers: [[X1, X2], [X3, X4]]      # tier 0, tier 1, ...
            forbidden_within_tiers: [0]
        """
        knowledge = cls()
        if not mapping:
            return knowledge
        for k, names in enumerate(mapping.get("tiers", []) or []):
            for name in names:
                knowledge.add_to_tier(k, name)
        for k in mapping.get("forbidden_within_tiers", []) or []:
            knowledge.set_tier_forbidden_within(int(k), True)
        for pair in mapping.get("forbidden", []) or []:
            knowledge.set_forbidden(*_as_pair(pair))
        for pair in mapping.get("required", []) or []:
            knowledge.set_required(*_as_pair(pair))
        return knowledge

    # ----- explicit edges -----

    def set_forbidden(self, a: NameLike, b: NameLike):
        edge = (_name(a), _name(b))
        if edge in self._required:
            raise ValueError(f"Edge {edge[0]} --> {edge[1]} is already required")
        self._forbidden.add(edge)

    def remove_forbidden(self, a: NameLike, b: NameLike):
        self._forbidden.discard((_name(a), _name(b)))

    def set_required(self, a: NameLike, b: NameLike):
        edge = (_name(a), _name(b))
        if edge in self._forbidden or self.is_forbidden_by_tiers(*edge):
            raise ValueError(f"Edge {edge[0]} --> {edge[1]} is forbidden")
        self._required.add(edge)

    def remove_required(self, a: NameLike, b: NameLike):
        self._required.discard((_name(a), _name(b)))

    # ----- tiers -----

    def add_to_tier(self, tier: int, node: NameLike):
        if tier < 0:
            raise ValueError(f"Tier must be >= 0: {tier}")
        name = _name(node)
        old = self._tier_of.get(name)
        if old is not None:
            self._tiers[old].remove(name)
        self._tiers.setdefault(tier, []).append(name)
        self._tier_of[name] = tier
        for a, b in self._required:
            if self.is_forbidden_by_tiers(a, b):
                raise ValueError(f"Tier placement of {name} forbids required edge {a} --> {b}")

    def set_tier_forbidden_within(self, tier: int, forbidden: bool):
        if forbidden:
            self._forbidden_within.add(tier)
        else:
            self._forbidden_within.discard(tier)

    def tier(self, tier: int) -> List[str]:
        return list(self._tiers.get(tier, []))

    def tier_of(self, node: NameLike) -> Optional[int]:
        return self._tier_of.get(_name(node))

    @property
    def num_tiers(self) -> int:
        return max(self._tiers) + 1 if self._tiers else 0

    # ----- queries -----

    def is_forbidden_by_tiers(self, a: NameLike, b: NameLike) -> bool:
        ta, tb = self._tier_of.get(_name(a)), self._tier_of.get(_name(b))
        if ta is None or tb is None:
            return False
        if ta > tb:
            return True
        return ta == tb and ta in self._forbidden_within

    def is_forbidden(self, a: NameLike, b: NameLike) -> bool:
        """True if the directed edge a --> b is ruled out."""
        if (_name(a), _name(b)) in self._forbidden:
            return True
        return self.is_forbidden_by_tiers(a, b)

    def is_required(self, a: NameLike, b: NameLike) -> bool:
        return (_name(a), _name(b)) in self._required

    def no_edge_required(self, a: NameLike, b: NameLike) -> bool:
        """True if an a -- b adjacency is not required in either direction."""
        return not (self.is_required(a, b) or self.is_required(b, a))

    def is_forbidden_both_ways(self, a: NameLike, b: NameLike) -> bool:
        return self.is_forbidden(a, b) and self.is_forbidden(b, a)

    def is_empty(self) -> bool:
        return not (self._forbidden or self._required or self._tiers)

    def required_edges(self) -> List[Tuple[str, str]]:
        return sorted(self._required)

    def forbidden_edges(self) -> List[Tuple[str, str]]:
        """Explicitly forbidden edges (tier-implied ones are not listed)."""
        return sorted(self._forbidden)

    def copy(self) -> "Knowledge":
        other = Knowledge()
        other._forbidden = set(self._forbidden)
        other._required = set(self._required)
        other._tiers = {k: list(v) for k, v in self._tiers.items()}
        other._tier_of = dict(self._tier_of)
        other._forbidden_within = set(self._forbidden_within)
        return other

    def __eq__(self, other) -> bool:
        if not isinstance(other, Knowledge):
            return NotImplemented
        return (self._forbidden == other._forbidden and self._required == other._required
                and self._tier_of == other._tier_of and self._forbidden_within == other._forbidden_within)

    __hash__ = None

    def __str__(self) -> str:
        lines = ["/knowledge"]
        for k in sorted(self._tiers):
            flag = "*" if k in self._forbidden_within else ""
            lines.append(f"{k}{flag} {' '.join(self._tiers[k])}")
        lines.append("forbiddirect")
        lines.extend(f"{a} {b}" for a, b in sorted(self._forbidden))
        lines.append("requiredirect")
        lines.extend(f"{a} {b}" for a, b in sorted(self._required))
        return "\n".join(lines)


def _as_pair(pair: Iterable) -> Tuple[str, str]:
    items = [str(p) for p in pair]
    if len(items) != 2:
        raise ValueError(f"Knowledge edge must name two variables: {pair!r}")
    return items[0], items[1]
