"""
causal-search: constraint-based and hybrid causal structure search.

- PC, PC-Stable, CPC, CPC-Stable: CPDAG search under causal sufficiency
- FCI: PAG search allowing latent confounders and selection bias
- GFCI: FGES score search followed by FCI-style pruning and orientation

Searches share one Graph type (endpoint marks in a dense matrix), an
IndependenceTest / Score interface, background Knowledge, and the FAS
skeleton stage.
"""

import logging

from .graph import Graph, Node, NodeType, Edge, Triple, NULL, CIRCLE, ARROW, TAIL
from .knowledge import Knowledge
from .sepset import SepsetMap
from .independence import (IndependenceResult, IndependenceTest, IndTestFisherZ, IndTestGSquare,
                           IndTestDSep, IndTestIndependenceFacts)
from .score import Score, SemBicScore, BDeuScore, ScoreCache
from .fas import Fas, FasStable, FasConcurrent
from .meek import MeekRules
from .orientation import FciOrient
from .search_utils import (ConflictRule, TripleType, cpdag_for_dag, dag_from_cpdag, is_legal_cpdag,
                           is_legal_mag, is_legal_pag, zhang_mag_from_pag, guarantee_pag)
from .pc import Pc, PcStable, Cpc, CpcStable
from .fci import Fci
from .fges import Fges
from .gfci import GFci
from .config import Parameters, load_parameters
from .registry import make_test, make_score, make_search, run_search

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    'Graph', 'Node', 'NodeType', 'Edge', 'Triple', 'NULL', 'CIRCLE', 'ARROW', 'TAIL',
    'Knowledge',
    'SepsetMap',
    'IndependenceResult', 'IndependenceTest', 'IndTestFisherZ', 'IndTestGSquare',
    'IndTestDSep', 'IndTestIndependenceFacts',
    'Score', 'SemBicScore', 'BDeuScore', 'ScoreCache',
    'Fas', 'FasStable', 'FasConcurrent',
    'MeekRules',
    'FciOrient',
    'ConflictRule', 'TripleType', 'cpdag_for_dag', 'dag_from_cpdag', 'is_legal_cpdag',
    'is_legal_mag', 'is_legal_pag', 'zhang_mag_from_pag', 'guarantee_pag',
    'Pc', 'PcStable', 'Cpc', 'CpcStable',
    'Fci',
    'Fges',
    'GFci',
    'Parameters', 'load_parameters',
    'make_test', 'make_score', 'make_search', 'run_search',
]
