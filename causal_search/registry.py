"""
String-keyed tables of tests, scores and searches.

    make_test("fisher-z", data, params)
    make_score("sem-bic", data, params)
    make_search("fci", params, test=test)
    run_search(data, params)            # all three, from params.test/score/algorithm
"""

import logging
from typing import Callable, Dict, Optional, Tuple

from .config import Parameters
from .fci import Fci
from .gfci import GFci
from .graph import Graph
from .independence import DataLike, IndTestDSep, IndTestFisherZ, IndTestGSquare, IndependenceTest
from .pc import Cpc, CpcStable, Pc, PcStable
from .score import BDeuScore, Score, SemBicScore

_logger = logging.getLogger(__name__)


def _fisher_z(data, params: Parameters, truth: Optional[Graph]) -> IndependenceTest:
    return IndTestFisherZ(data, alpha=params.alpha)


def _g_square(data, params: Parameters, truth: Optional[Graph]) -> IndependenceTest:
    return IndTestGSquare(data, alpha=params.alpha)


def _d_sep(data, params: Parameters, truth: Optional[Graph]) -> IndependenceTest:
    if truth is None:
        raise ValueError("The d-sep test needs a true DAG")
    return IndTestDSep(truth)


TESTS: Dict[str, Callable[..., IndependenceTest]] = {
    "fisher-z": _fisher_z,
    "g-square": _g_square,
    "d-sep": _d_sep,
}

SCORES: Dict[str, Callable[[DataLike, Parameters], Score]] = {
    "sem-bic": lambda data, params: SemBicScore(data, penalty_discount=params.penalty_discount),
    "bdeu": lambda data, params: BDeuScore(data, sample_prior=params.sample_prior,
                                           structure_prior=params.structure_prior),
}


def _pc(params, test, score, logger):
    return Pc(test, knowledge=params.knowledge, depth=params.depth, conflict_rule=params.conflict_rule,
              logger=logger, verbose=params.verbose)


def _pc_stable(params, test, score, logger):
    return PcStable(test, knowledge=params.knowledge, depth=params.depth, conflict_rule=params.conflict_rule,
                    num_threads=params.num_threads, logger=logger, verbose=params.verbose)


def _cpc(params, test, score, logger):
    return Cpc(test, knowledge=params.knowledge, depth=params.depth, conflict_rule=params.conflict_rule,
               logger=logger, verbose=params.verbose)


def _cpc_stable(params, test, score, logger):
    return CpcStable(test, knowledge=params.knowledge, depth=params.depth, conflict_rule=params.conflict_rule,
                     num_threads=params.num_threads, logger=logger, verbose=params.verbose)


def _fci(params, test, score, logger):
    return Fci(test, knowledge=params.knowledge, depth=params.depth, stable=params.stable,
               possible_dsep=params.possible_dsep, max_path_length=params.max_path_length,
               complete_rule_set=params.complete_rule_set, guarantee_pag=params.guarantee_pag,
               num_threads=params.num_threads, logger=logger, verbose=params.verbose)


def _gfci(params, test, score, logger):
    if score is None:
        raise ValueError("gfci needs a score")
    return GFci(test, score, knowledge=params.knowledge, depth=params.depth, max_degree=params.max_degree,
                max_path_length=params.max_path_length, complete_rule_set=params.complete_rule_set,
                sepset_finder=params.sepset_finder, num_threads=params.num_threads,
                guarantee_pag=params.guarantee_pag, logger=logger, verbose=params.verbose)


ALGORITHMS = {
    "pc": _pc,
    "pc-stable": _pc_stable,
    "cpc": _cpc,
    "cpc-stable": _cpc_stable,
    "fci": _fci,
    "gfci": _gfci,
}

# searches that take a score as well as a test
SCORE_BASED = {"gfci"}


def _lookup(table: Dict[str, Callable], kind: str, name: str) -> Callable:
    try:
        return table[name]
    except KeyError:
        raise ValueError(f"Unknown {kind} {name!r}; expected one of {sorted(table)}") from None


def make_test(name: str, data: Optional[DataLike], params: Optional[Parameters] = None,
              truth: Optional[Graph] = None) -> IndependenceTest:
    return _lookup(TESTS, "test", name)(data, params or Parameters(), truth)


def make_score(name: str, data: DataLike, params: Optional[Parameters] = None) -> Score:
    return _lookup(SCORES, "score", name)(data, params or Parameters())


def make_search(name: str, params: Optional[Parameters] = None, test: Optional[IndependenceTest] = None,
                score: Optional[Score] = None, logger: Optional[logging.Logger] = None):
    factory = _lookup(ALGORITHMS, "algorithm", name)
    return factory(params or Parameters(), test, score, logger)


def run_search(data: Optional[DataLike], params: Optional[Parameters] = None, truth: Optional[Graph] = None,
               logger: Optional[logging.Logger] = None) -> Tuple[Graph, object]:
    """Build test, score and search from params and run it; returns (graph, search)."""
    params = params or Parameters()
    logger = logger or _logger
    test = make_test(params.test, data, params, truth)
    score = make_score(params.score, data, params) if params.algorithm in SCORE_BASED else None
    search = make_search(params.algorithm, params, test=test, score=score, logger=logger)
    logger.info("Running %s with %s (alpha=%s, depth=%s)", params.algorithm, params.test, params.alpha, params.depth)
    graph = search.search()
    return graph, search
