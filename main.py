#!/usr/bin/env python3
"""
Run one causal search on a CSV dataset.

Usage:
    # PC with Fisher-Z at alpha = 0.01
    python main.py --data data/my_data.csv --algorithm pc --alpha 0.01

    # Parameters (and background knowledge) from a YAML config
    python main.py --data data/my_data.csv --config configs/fci.yaml

    # Compare the result against a reference graph (Tetrad text format)
    python main.py --data data/my_data.csv --algorithm gfci --truth data/my_graph.txt
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import numpy as np
import pandas as pd

from causal_search.comparison import compare_graphs, edge_misclassification_counts, format_metrics_table
from causal_search.config import load_parameters
from causal_search.graph import Graph
from causal_search.log import init_logging
from causal_search.registry import ALGORITHMS, SCORE_BASED, SCORES, TESTS, run_search

logger = logging.getLogger("causal_search.main")

DISCRETE = {"g-square", "bdeu"}


def load_data(path: str, discrete: bool) -> pd.DataFrame:
    df = pd.read_csv(path)

    # Preprocess data
    if 'date' in df.columns:
        df = df.drop(columns=['date'])

    df = df.replace('NA', np.nan)
    for col in df.columns:
        df[col] = pd.to_numeric(df[col], errors='coerce')
    df = df.dropna(axis=1, how='all')
    df = df.dropna()
    df = df.select_dtypes(include=[np.number])
    if discrete:
        df = df.astype(int)
    return df


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Run a causal structure search (PC, CPC, FCI, GFCI) on tabular data.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Stable PC on four threads
  python main.py --data data/my_data.csv --algorithm pc-stable --threads 4

  # Discrete data
  python main.py --data data/survey.csv --algorithm fci --test g-square

  # Override config values with JSON
  python main.py --data data/my_data.csv --config configs/fci.yaml --overrides '{"depth": 2}'
        """
    )

    parser.add_argument('--data', '-d', type=str, default=None,
                        help='Path to CSV data file (header row gives variable names)')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='YAML file with search parameters and optional knowledge section')
    parser.add_argument('--overrides', type=str, default=None,
                        help='JSON object merged on top of the config')
    parser.add_argument('--algorithm', '-A', choices=sorted(ALGORITHMS), default=None,
                        help='Search algorithm (default: pc, or the config value)')
    parser.add_argument('--test', '-t', choices=sorted(TESTS), default=None,
                        help='Independence test (default: fisher-z)')
    parser.add_argument('--score', '-s', choices=sorted(SCORES), default=None,
                        help='Score for gfci (default: sem-bic)')
    parser.add_argument('--alpha', '-a', type=float, default=None,
                        help='Significance level (default: 0.05)')
    parser.add_argument('--depth', type=int, default=None,
                        help='Maximum conditioning set size, -1 for unbounded')
    parser.add_argument('--threads', type=int, default=None,
                        help='Worker threads for the stable adjacency search')
    parser.add_argument('--truth', '-r', type=str, default=None,
                        help='Reference graph file (Tetrad format); prints comparison statistics. '
                             'Required by the d-sep test.')
    parser.add_argument('--output', '-o', type=str, default=None,
                        help='Write the resulting graph (Tetrad format) to this file')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Also write the log to this file')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log every search step')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Only log warnings')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    level = logging.WARNING if args.quiet else logging.INFO
    init_logging(level, args.log_file)

    flags = {
        'algorithm': args.algorithm,
        'test': args.test,
        'score': args.score,
        'alpha': args.alpha,
        'depth': args.depth,
        'num_threads': args.threads,
    }
    try:
        overrides = json.loads(args.overrides) if args.overrides else {}
        if not isinstance(overrides, dict):
            raise ValueError("--overrides must be a JSON object")
        overrides.update({k: v for k, v in flags.items() if v is not None})
        if args.verbose:
            overrides['verbose'] = True
        params = load_parameters(args.config, json.dumps(overrides) if overrides else None)
    except (ValueError, TypeError, FileNotFoundError) as e:
        print(f"ERROR: {e}")
        return 2

    truth = None
    if args.truth:
        truth = Graph.from_string(Path(args.truth).read_text())
        print(f"Reference graph: {truth.num_nodes} nodes, {truth.num_edges()} edges")

    data = None
    if args.data:
        data = load_data(args.data, params.test in DISCRETE)
        print(f"Data shape: {data.shape}, Variables: {list(data.columns)}")
    elif params.test != "d-sep":
        print("ERROR: --data is required unless the d-sep test is used with --truth")
        return 2
    if data is None and params.algorithm in SCORE_BASED:
        print(f"ERROR: --data is required for {params.algorithm}, which also scores the data")
        return 2

    graph, search = run_search(data, params, truth=truth, logger=logger)

    print("\n" + "=" * 40)
    print(f"{params.algorithm.upper()} RESULT ({search.elapsed_time_:.2f}s)")
    print("=" * 40)
    print(graph)

    if args.output:
        Path(args.output).write_text(str(graph))
        print(f"\nGraph written to {args.output}")

    if truth is not None:
        metrics = compare_graphs(truth, graph)
        print()
        print(format_metrics_table(metrics, params.algorithm))
        print("\nEdge misclassifications (rows: true, columns: estimated):")
        table = edge_misclassification_counts(truth, graph)
        table = table.loc[(table != 0).any(axis=1), (table != 0).any(axis=0)]
        print(table.to_string())
    return 0


if __name__ == "__main__":
    sys.exit(main())
