from pathlib import Path
import json
from topicrec.src import pipeline
from topicrec.src.datasets import build_interaction_frame, read_simple_yaml

DATA_PATH = Path("topicrec/data/movielens_small.csv")
RUN_DIR = Path("topicrec/output/movielens_small_run")
RUN_DIR.mkdir(parents=True, exist_ok=True)

if not DATA_PATH.exists():
    print("Downloading MovieLens small interactions...")
    DATA_PATH.parent.mkdir(parents=True, exist_ok=True)
    frame = build_interaction_frame(dataset="small", min_rating=4.0)
    frame.to_csv(DATA_PATH, index=False)
    print(f"Saved dataset to {DATA_PATH}")
else:
    print("MovieLens small dataset already downloaded.")

config = read_simple_yaml("topicrec/configs/base.yaml")

pipeline.prepare_dataset(
    DATA_PATH,
    RUN_DIR,
    test_frac=float(config.get("split", {}).get("test_frac", 0.2)),
    seed=42,
)

metrics = pipeline.train_and_evaluate_lda(
    RUN_DIR,
    lda_cfg=config.get("lda", {}),
    k_eval=config.get("eval", {}).get("k", [5, 10]),
    seed=42,
    backend="torch",
    prefer_gpu=True,
)

print("\n=== Final Results ===")
print(json.dumps(metrics, indent=2))
with open(RUN_DIR / "metrics.json", "w") as f:
    json.dump(metrics, f, indent=2)
