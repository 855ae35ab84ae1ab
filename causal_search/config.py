"""
Search parameters and YAML config loading.

A config file holds the flat parameter keys plus an optional knowledge
section:

    algorithm: fci
    test: fisher-z
    alpha: 0.01
    depth: 3
    knowledge:
      tiers: [[X1, X2], [X3]]
      forbidden: [[X4, X1]]

load_parameters() applies optional JSON overrides on top, e.g.
'{"alpha": 0.05, "knowledge": {"required": [["X1", "X3"]]}}'.
"""

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .knowledge import Knowledge
from .search_utils import ConflictRule


@dataclass
class Parameters:
    algorithm: str = "pc"
    test: str = "fisher-z"
    score: str = "sem-bic"
    alpha: float = 0.05
    depth: int = -1
    penalty_discount: float = 1.0
    structure_prior: float = 1.0
    sample_prior: float = 1.0
    max_path_length: int = -1
    complete_rule_set: bool = True
    possible_dsep: bool = True
    sepset_finder: str = "min_p"
    num_threads: int = 1
    guarantee_pag: bool = False
    conflict_rule: ConflictRule = ConflictRule.OVERWRITE_EXISTING
    max_degree: int = -1
    stable: bool = True
    verbose: bool = False
    knowledge: Knowledge = field(default_factory=Knowledge)

    def __post_init__(self):
        if not 0.0 <= self.alpha <= 1.0:
            raise ValueError(f"alpha must be in [0, 1]: {self.alpha}")
        for name in ("depth", "max_path_length", "max_degree"):
            if getattr(self, name) < -1:
                raise ValueError(f"{name} must be -1 (unbounded) or >= 0: {getattr(self, name)}")
        if self.num_threads < 1:
            raise ValueError(f"num_threads must be >= 1: {self.num_threads}")
        if self.penalty_discount <= 0:
            raise ValueError(f"penalty_discount must be > 0: {self.penalty_discount}")
        if self.sample_prior <= 0:
            raise ValueError(f"sample_prior must be > 0: {self.sample_prior}")
        if self.structure_prior < 0:
            raise ValueError(f"structure_prior must be >= 0: {self.structure_prior}")
        # accepts the enum or its string value
        self.conflict_rule = ConflictRule(self.conflict_rule)
        if isinstance(self.knowledge, dict):
            self.knowledge = Knowledge.from_dict(self.knowledge)
        elif self.knowledge is None:
            raise TypeError("Knowledge must not be None")

    @classmethod
    def from_dict(cls, cfg: Optional[Dict[str, Any]]) -> "Parameters":
        cfg = dict(cfg or {})
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(cfg) - known)
        if unknown:
            raise ValueError(f"Unknown parameter(s): {', '.join(unknown)}")
        return cls(**cfg)

    def to_dict(self) -> Dict[str, Any]:
        out = {f.name: getattr(self, f.name) for f in dataclasses.fields(self) if f.name != "knowledge"}
        out["conflict_rule"] = self.conflict_rule.value
        return out

    def replace(self, **changes) -> "Parameters":
        return dataclasses.replace(self, **changes)


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    cfg = yaml.safe_load(p.read_text())
    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Config {p} must be a mapping, got {type(cfg).__name__}")
    return cfg


def deep_merge(a: Dict, b: Dict) -> Dict:
    """Recursively merge dict b into a (returns a new dict)."""
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def load_parameters(path: Optional[Union[str, Path]] = None, overrides_json: Optional[str] = None) -> Parameters:
    cfg = load_yaml(path) if path is not None else {}
    if overrides_json:
        overrides = json.loads(overrides_json)
        if not isinstance(overrides, dict):
            raise ValueError("Overrides must be a JSON object")
        cfg = deep_merge(cfg, overrides)
    return Parameters.from_dict(cfg)
