# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Run Algorithm Selection

Entry point: reads clean feature and performance CSV tables (key columns
`dimension, function_id`), evaluates every configured combination with LOOCV
and logs the summary.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from CONFIG.config_schemas import PipelineConfig, ParallelConfig
from CONFIG.logging_config_utils import init_logging_config
from ALGO_SELECTION.common.exceptions import AlgoSelectionError
from ALGO_SELECTION.common.run_context import RunContext
from ALGO_SELECTION.data.tables import FeatureTable, PerformanceTable
from ALGO_SELECTION.orchestration.pipeline import AlgorithmSelectionPipeline

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Per-instance algorithm selection with LOOCV over learner x strategy x family"
    )
    parser.add_argument("--features", type=Path, required=True,
                        help="Feature CSV (dimension, function_id, <features...>)")
    parser.add_argument("--performance", type=Path, required=True,
                        help="Performance CSV (dimension, function_id, <solver ERTs...>, baseline)")
    parser.add_argument("--baseline", default=None, help="Baseline solver column (default from config)")
    parser.add_argument("--learners", nargs="+", default=None, help="Learner families to evaluate")
    parser.add_argument("--strategies", nargs="+", default=None, help="Feature selection strategies")
    parser.add_argument("--families", nargs="+", default=None, help="Selector families")
    parser.add_argument("--scope", choices=["global", "per_fold"], default=None,
                        help="Feature selection scope")
    parser.add_argument("--seed", type=int, default=None, help="Base seed")
    parser.add_argument("--workers", type=int, default=None, help="Fold worker count")
    parser.add_argument("--executor", choices=["process", "thread"], default=None,
                        help="Fold worker pool type")
    parser.add_argument("--keep-constant-features", action="store_true",
                        help="Do not drop near-constant features")
    parser.add_argument("--output-dir", type=Path, default=None,
                        help="Write summary, failures and outcome tables as CSV here")
    parser.add_argument("--log-profile", default=None, help="Logging profile from CONFIG/core/logging.yaml")
    return parser


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    overrides = {}
    for attr, field_name in (("baseline", "baseline"), ("learners", "learners"),
                             ("strategies", "strategies"), ("families", "families"),
                             ("scope", "feature_selection_scope"), ("seed", "base_seed")):
        value = getattr(args, attr)
        if value is not None:
            overrides[field_name] = value

    base = PipelineConfig.from_config(**overrides)
    if args.workers is not None or args.executor is not None:
        base.parallel = ParallelConfig(
            max_workers=args.workers if args.workers is not None else base.parallel.max_workers,
            executor=args.executor or base.parallel.executor,
            threads_per_worker=base.parallel.threads_per_worker,
        )
    return base


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    init_logging_config(profile=args.log_profile)

    try:
        config = config_from_args(args)
        features = FeatureTable.from_frame(pd.read_csv(args.features))
        performance = PerformanceTable.from_frame(pd.read_csv(args.performance), config.baseline)

        pipeline = AlgorithmSelectionPipeline(RunContext(config))
        result = pipeline.run(features, performance, drop_constant=not args.keep_constant_features)
    except AlgoSelectionError as e:
        logger.error(f"Run failed [{e.error_code}]: {e}")
        return 1

    summary = result.summary()
    logger.info("Summary (mean relERT per combination):\n" + summary.to_string(index=False))
    failures = result.aggregator.failures_frame()
    if len(failures):
        logger.info("Skipped / failed combinations:\n"
                    + failures[["combination", "reason"]].to_string(index=False))

    if args.output_dir is not None:
        args.output_dir.mkdir(parents=True, exist_ok=True)
        summary.to_csv(args.output_dir / "summary.csv", index=False)
        failures.to_csv(args.output_dir / "failures.csv", index=False)
        result.subsets_frame().to_csv(args.output_dir / "feature_subsets.csv", index=False)
        for name, outcomes in result.aggregator.results.items():
            outcomes.to_csv(args.output_dir / f"outcomes_{name}.csv", index=False)
        logger.info(f"Wrote results to {args.output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
