#!/usr/bin/env python3
"""Split an interaction CSV into train/test files for the LDA benchmark."""
from __future__ import annotations

import argparse
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from topicrec.src import pipeline
from topicrec.src.datasets import build_interaction_frame, read_simple_yaml


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--data_path", help="Interaction CSV (user_id,item_id[,count])")
    parser.add_argument("--movielens", choices=["small", "medium"], help="Download MovieLens instead of --data_path")
    parser.add_argument("--out_dir", required=True, help="Directory to place prepared assets")
    parser.add_argument("--config", default=str(Path(__file__).resolve().parents[1] / "configs" / "base.yaml"))
    parser.add_argument("--test_frac", type=float, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--limit", type=int, default=None, help="Cap on the number of interactions")
    args = parser.parse_args()

    if not args.data_path and not args.movielens:
        parser.error("one of --data_path or --movielens is required")

    config = read_simple_yaml(args.config)
    split_cfg = config.get("split", {})
    test_frac = args.test_frac if args.test_frac is not None else float(split_cfg.get("test_frac", 0.2))
    seed = args.seed if args.seed is not None else int(split_cfg.get("seed", 42))

    data_path = args.data_path
    if args.movielens:
        data_path = Path(args.out_dir) / f"movielens_{args.movielens}.csv"
        data_path.parent.mkdir(parents=True, exist_ok=True)
        build_interaction_frame(dataset=args.movielens).to_csv(data_path, index=False)

    pipeline.prepare_dataset(
        data_path,
        args.out_dir,
        test_frac=test_frac,
        seed=seed,
        interaction_limit=args.limit,
    )
    print("Preparation complete.")


if __name__ == "__main__":
    main()
