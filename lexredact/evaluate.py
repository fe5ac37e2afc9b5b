"""
LexRedact detection benchmark.

Runs a HybridDetector over a synthetic JSONL dataset (see
generate_synthetic_data.py), aligns detected spans back to word-level BIO
tags and computes per-entity F1/precision/recall with seqeval, plus
latency percentiles and process memory.

Usage:
    python -m lexredact.evaluate --dataset data/synthetic.jsonl
    python -m lexredact.evaluate --mode pattern_only hybrid --limit 50

Output:
    - Human-readable results table to stdout
    - JSON report saved to results/<mode>_<timestamp>.json

Ground-truth tags of types a mode cannot produce are not filtered: a
pattern-only run is scored against PERSON/ORGANIZATION/LOCATION labels
too, so modes are directly comparable.
"""

from __future__ import annotations

import argparse
import json
import os
import re
import time
import tracemalloc
from datetime import datetime, timezone
from itertools import islice
from pathlib import Path

import numpy as np
import psutil
from seqeval.metrics import (
    classification_report,
    f1_score,
    precision_score,
    recall_score,
)

from lexredact.config import Settings
from lexredact.factory import DetectorFactory
from lexredact.hybrid_detector import DetectionMode, HybridDetector
from lexredact.logging_config import configure_logging
from lexredact.schemas import Entity


def _get_memory_mb() -> float:
    """Return current RSS (Resident Set Size) of this process in MB."""
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / (1024 * 1024)


def load_dataset(path: Path, limit: int | None = None) -> list[dict]:
    """Read the first `limit` JSONL records (all of them if limit is None)."""
    with open(path) as f:
        records = (json.loads(line) for line in f if line.strip())
        return list(islice(records, limit))


def sample_text(sample: dict) -> str:
    return sample.get("text") or " ".join(sample["tokens"])


def align_entities_to_words(text: str, entities: list[Entity]) -> list[str]:
    """Word-level BIO tags for entity spans over the whitespace words of text.

    A word overlapping an entity is tagged with its type; the first such
    word is B-, the rest I-. Words already tagged by an earlier entity
    are left alone.
    """
    word_offsets = [(m.start(), m.end()) for m in re.finditer(r"\S+", text)]
    pred_tags = ["O"] * len(word_offsets)

    for entity in entities:
        label = entity.entity_type.value
        first_tagged = False
        for idx, (ws, we) in enumerate(word_offsets):
            if ws < entity.end and we > entity.start and pred_tags[idx] == "O":
                pred_tags[idx] = f"{'I' if first_tagged else 'B'}-{label}"
                first_tagged = True

    return pred_tags


def evaluate_detector(
    detector: HybridDetector, samples: list[dict], num_warmup: int = 5
) -> dict:
    """Score detector.detect() on samples.

    Returns:
        Dictionary with "metrics", "latency" and "classification_report".
    """
    for sample in samples[: min(num_warmup, len(samples))]:
        detector.detect(sample_text(sample))

    all_true_tags: list[list[str]] = []
    all_pred_tags: list[list[str]] = []
    latencies_ms: list[float] = []

    for i, sample in enumerate(samples):
        text = sample_text(sample)

        start_ns = time.perf_counter_ns()
        entities = detector.detect(text)
        latencies_ms.append((time.perf_counter_ns() - start_ns) / 1_000_000)

        all_true_tags.append(list(sample["ner_tag_labels"]))
        all_pred_tags.append(align_entities_to_words(text, entities))

        if (i + 1) % 50 == 0:
            print(f"  Processed {i + 1}/{len(samples)} samples...")

    lat_array = np.array(latencies_ms) if latencies_ms else np.zeros(1)
    return {
        "metrics": {
            "macro_f1": round(
                f1_score(all_true_tags, all_pred_tags, average="macro", zero_division=0), 4
            ),
            "macro_precision": round(
                precision_score(all_true_tags, all_pred_tags, average="macro", zero_division=0),
                4,
            ),
            "macro_recall": round(
                recall_score(all_true_tags, all_pred_tags, average="macro", zero_division=0),
                4,
            ),
        },
        "latency": {
            "p50_ms": round(float(np.percentile(lat_array, 50)), 2),
            "p95_ms": round(float(np.percentile(lat_array, 95)), 2),
            "p99_ms": round(float(np.percentile(lat_array, 99)), 2),
            "mean_ms": round(float(np.mean(lat_array)), 2),
            "max_ms": round(float(np.max(lat_array)), 2),
        },
        "classification_report": classification_report(
            all_true_tags, all_pred_tags, zero_division=0
        ),
    }


def run_evaluation(
    settings: Settings,
    dataset_path: Path,
    limit: int | None = None,
) -> dict:
    """Build a detector from settings, benchmark it and collect metadata."""
    rss_before_mb = _get_memory_mb()
    tracemalloc.start()

    print(f"Building detector (mode={settings.detection_mode.value})")
    samples = load_dataset(dataset_path, limit=limit)
    with DetectorFactory.create(settings) as detector:
        status = detector.layer_status()
        rss_after_load_mb = _get_memory_mb()
        print(f"  Layers available: {status.available_layers()} ({status})")

        print(f"Evaluating {len(samples)} samples...")
        scores = evaluate_detector(detector, samples)

    rss_peak_mb = _get_memory_mb()
    _, tracemalloc_peak_bytes = tracemalloc.get_traced_memory()
    tracemalloc.stop()

    return {
        "mode": settings.detection_mode.value,
        "fusion": settings.fusion_strategy.value,
        "ner_model": settings.ner_model_id if status.ner else None,
        "dataset": str(dataset_path),
        "num_samples": len(samples),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **scores,
        "memory": {
            "rss_before_detector_mb": round(rss_before_mb, 1),
            "rss_after_detector_mb": round(rss_after_load_mb, 1),
            "detector_rss_delta_mb": round(rss_after_load_mb - rss_before_mb, 1),
            "rss_peak_mb": round(rss_peak_mb, 1),
            "tracemalloc_peak_mb": round(tracemalloc_peak_bytes / (1024 * 1024), 1),
        },
    }


# (section, key, label, format) rows shared by the single-run report and
# the comparison table.
REPORT_FIELDS: list[tuple[str, str, str, str]] = [
    ("metrics", "macro_f1", "Macro F1", ".4f"),
    ("metrics", "macro_precision", "Macro precision", ".4f"),
    ("metrics", "macro_recall", "Macro recall", ".4f"),
    ("latency", "p50_ms", "Latency p50 (ms)", ".1f"),
    ("latency", "p95_ms", "Latency p95 (ms)", ".1f"),
    ("latency", "p99_ms", "Latency p99 (ms)", ".1f"),
    ("memory", "detector_rss_delta_mb", "Detector RSS delta (MB)", ".1f"),
    ("memory", "rss_peak_mb", "RSS peak (MB)", ".1f"),
]


def print_results(results: dict) -> None:
    rule = "-" * 60
    print(rule)
    print(f"  {results['mode']} mode, {results['fusion']} fusion")
    print(f"  {results['num_samples']} samples from {results['dataset']}")
    if results["ner_model"]:
        print(f"  NER model: {results['ner_model']}")
    print(f"  Run at {results['timestamp']}")
    print(rule)

    for section, key, label, fmt in REPORT_FIELDS:
        print(f"  {label:<26}{results[section][key]:>10{fmt}}")

    print("\n  Per-type report:")
    print(results["classification_report"])
    print(rule)


def save_results(results: dict, output_dir: Path) -> Path:
    """Write results as <mode>_<UTC timestamp>.json under output_dir."""
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    output_path = output_dir / f"{results['mode']}_{stamp}.json"
    output_path.write_text(json.dumps(results, indent=2))
    return output_path


def print_comparison_table(all_results: list[dict]) -> None:
    """One row per mode, one column per report field."""
    columns = [label for _, _, label, _ in REPORT_FIELDS]
    widths = [max(len(label), 10) for label in columns]
    header = f"{'Mode':<16}" + " ".join(f"{c:>{w}}" for c, w in zip(columns, widths))

    print("\n" + header)
    print("-" * len(header))
    for results in all_results:
        cells = [
            f"{results[section][key]:>{width}{fmt}}"
            for (section, key, _, fmt), width in zip(REPORT_FIELDS, widths)
        ]
        print(f"{results['mode']:<16}" + " ".join(cells))


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Benchmark LexRedact detection on a synthetic legal dataset"
    )
    parser.add_argument(
        "--mode",
        type=str,
        nargs="+",
        choices=[m.value for m in DetectionMode],
        default=None,
        help="Detection mode(s). Pass several for a comparison table "
        "(default: LEXREDACT_DETECTION_MODE)",
    )
    parser.add_argument(
        "--dataset",
        type=str,
        default="data/synthetic.jsonl",
        help="Path to synthetic JSONL dataset (default: data/synthetic.jsonl)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Max samples to evaluate (default: all)",
    )
    parser.add_argument(
        "--results-dir",
        type=str,
        default="results",
        help="Directory for JSON reports (default: results)",
    )
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings.log_level)

    dataset_path = Path(args.dataset)
    if not dataset_path.exists():
        print(f"Error: Dataset not found at {dataset_path}")
        print("Run `python -m lexredact.generate_synthetic_data` first.")
        raise SystemExit(1)

    modes = [DetectionMode(m) for m in args.mode] if args.mode else [settings.detection_mode]
    all_results: list[dict] = []

    for mode in modes:
        results = run_evaluation(
            settings.model_copy(update={"detection_mode": mode}),
            dataset_path,
            limit=args.limit,
        )
        print_results(results)
        saved_path = save_results(results, Path(args.results_dir))
        print(f"\nResults saved to: {saved_path}\n")
        all_results.append(results)

    if len(all_results) > 1:
        print_comparison_table(all_results)


if __name__ == "__main__":
    main()
