#!/usr/bin/env python3
"""Train the LDA recommender and evaluate it on the held-out split."""
from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from topicrec.src import pipeline
from topicrec.src.datasets import read_simple_yaml


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--data_dir", required=True, help="Prepared data directory")
    parser.add_argument("--config", default=str(Path(__file__).resolve().parents[1] / "configs" / "base.yaml"))
    parser.add_argument("--topics", type=int, default=None, help="Number of latent topics")
    parser.add_argument("--rounds", type=int, default=None, help="Number of EM rounds")
    parser.add_argument("--burn_in", type=int, default=None)
    parser.add_argument("--K", type=int, nargs="+", default=None, help="Evaluation cutoff(s)")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--backend", choices=["numpy", "torch"], default=None)
    parser.add_argument("--cpu", action="store_true", help="Disable GPU scoring for the torch backend")
    parser.add_argument("--quiet", action="store_true")
    args = parser.parse_args()

    config = read_simple_yaml(args.config)
    lda_cfg = dict(config.get("lda", {}))
    eval_cfg = config.get("eval", {})
    for key in ("topics", "rounds", "burn_in"):
        value = getattr(args, key)
        if value is not None:
            lda_cfg[key] = value
    k_eval = args.K if args.K is not None else eval_cfg.get("k", 10)
    backend = args.backend or str(eval_cfg.get("backend", "numpy"))

    results = pipeline.train_and_evaluate_lda(
        args.data_dir,
        lda_cfg=lda_cfg,
        k_eval=k_eval,
        seed=args.seed,
        backend=backend,
        prefer_gpu=not args.cpu,
        verbose=not args.quiet,
    )

    payload = {
        "model": "lda",
        "metrics": results,
        "config": {
            "lda": lda_cfg,
            "k": k_eval,
            "seed": args.seed,
            "backend": backend,
        },
    }
    print(json.dumps(payload))


if __name__ == "__main__":
    main()
