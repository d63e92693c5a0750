#!/usr/bin/env python3
"""
Build a Stacked Ensemble from a CSV
===================================

Fits the default candidate set on a shared v-fold partition, blends the
held-out predictions, refits the members and saves the ensemble.

Usage:
    python scripts/build_stack.py --data train.csv --target y
    python scripts/build_stack.py --data train.csv --target species --mode classification
    python scripts/build_stack.py --data train.csv --target y --config stacks.yaml --output models/stack
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import argparse
import logging
import time

import pandas as pd

from stacks import ResamplePartition, StackConfig, fit_resamples, stacks
from stacks.core.logger import setup_logger, silence_external_loggers
from stacks.models import create_base_specs

logger = logging.getLogger("stacks.scripts.build_stack")


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Build a stacked ensemble from a CSV file',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument('--data', type=str, required=True, help='Training CSV file')
    parser.add_argument('--target', type=str, required=True, help='Outcome column')
    parser.add_argument(
        '--mode',
        type=str,
        choices=['regression', 'classification'],
        default='regression',
        help='Prediction task (default: regression)'
    )
    parser.add_argument(
        '--config',
        type=str,
        default='stacks.yaml',
        help='Path to configuration file (default: stacks.yaml)'
    )
    parser.add_argument('--folds', type=int, default=5, help='Resampling folds (default: 5)')
    parser.add_argument('--seed', type=int, default=42, help='Random seed (default: 42)')
    parser.add_argument('--no-neural', action='store_true', help='Skip the PyTorch candidate')
    parser.add_argument('--n-jobs', type=int, default=1, help='Parallel fold fits (default: 1)')
    parser.add_argument(
        '--output',
        type=str,
        default='models/stack',
        help='Directory to save the ensemble (default: models/stack)'
    )

    return parser.parse_args()


def main():
    args = parse_args()

    config = StackConfig.load(args.config)
    setup_logger(config=config.logging)
    silence_external_loggers()

    df = pd.read_csv(args.data)
    if args.target not in df.columns:
        logger.error(f"Target column '{args.target}' not in {list(df.columns)}")
        return 1

    y = df[args.target]
    X = df.drop(columns=[args.target]).select_dtypes('number')
    logger.info(f"Loaded {len(df)} rows, {X.shape[1]} numeric features")

    partition = ResamplePartition.vfold(len(X), v=args.folds, random_state=args.seed)
    specs = create_base_specs(args.mode, include_neural=not args.no_neural, random_state=args.seed)

    start = time.time()
    stack = stacks(config)
    for name, spec in specs.items():
        logger.info(f"Resampling candidate {name}")
        candidate = fit_resamples(spec, partition, X, y, name=name, n_jobs=args.n_jobs)
        stack.add_candidates(candidate)

    ensemble = stack.blend_predictions().fit_members(X, y)
    logger.info(f"Ensemble built in {time.time() - start:.1f}s")

    print(ensemble.summary())
    ensemble.axe_data().save(args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
