"""
Tests for the synthetic dataset generator and the benchmark scorer.

Everything runs with the pattern layer only; no model is downloaded.
"""

import json

import pytest

from lexredact.config import Settings
from lexredact.evaluate import (
    REPORT_FIELDS,
    align_entities_to_words,
    evaluate_detector,
    load_dataset,
    print_comparison_table,
    print_results,
    run_evaluation,
    save_results,
)
from lexredact.generate_synthetic_data import (
    LABEL_LIST,
    LABEL_TO_ID,
    generate_dataset,
    generate_samples,
    tokenize_and_label,
)
from lexredact.hybrid_detector import DetectionMode, HybridDetector
from lexredact.schemas import Entity, EntityType


# ---------------------------------------------------------------------------
# Synthetic data
# ---------------------------------------------------------------------------


class TestTokenizeAndLabel:
    def test_bio_tags(self) -> None:
        text = "This agreement is made on March 01, 2020 between John Smith and Acme Inc. of Paris."
        tokens, tags = tokenize_and_label(
            text,
            [
                ("March 01, 2020", "DATE"),
                ("John Smith", "PERSON"),
                ("Acme Inc.", "ORGANIZATION"),
                ("Paris", "LOCATION"),
            ],
        )
        assert len(tokens) == len(tags)
        assert list(zip(tokens, tags))[5:] == [
            ("March", "B-DATE"),
            ("01,", "I-DATE"),
            ("2020", "I-DATE"),
            ("between", "O"),
            ("John", "B-PERSON"),
            ("Smith", "I-PERSON"),
            ("and", "O"),
            ("Acme", "B-ORGANIZATION"),
            ("Inc.", "I-ORGANIZATION"),
            ("of", "O"),
            ("Paris.", "B-LOCATION"),
        ]

    def test_first_entity_claims_characters(self) -> None:
        _, tags = tokenize_and_label(
            "Under Article 6 GDPR today", [("Article 6 GDPR", "LAW"), ("GDPR", "ORGANIZATION")]
        )
        assert tags == ["O", "B-LAW", "I-LAW", "I-LAW", "O"]


class TestGenerateSamples:
    def test_reproducible(self) -> None:
        assert generate_samples(10, seed=7) == generate_samples(10, seed=7)

    def test_tags_are_aligned(self) -> None:
        for sample in generate_samples(30, seed=1):
            assert sample["tokens"] == sample["text"].split()
            assert len(sample["ner_tags"]) == len(sample["tokens"])
            assert all(tag in LABEL_LIST for tag in sample["ner_tag_labels"])
            assert sample["ner_tags"] == [LABEL_TO_ID[t] for t in sample["ner_tag_labels"]]
            assert any(tag != "O" for tag in sample["ner_tag_labels"])

    def test_generate_dataset_writes_jsonl(self, tmp_path) -> None:
        output = tmp_path / "data" / "synthetic.jsonl"
        counts = generate_dataset(12, output, seed=3)

        records = load_dataset(output)
        assert len(records) == 12
        b_tags = sum(
            tag.startswith("B-") for record in records for tag in record["ner_tag_labels"]
        )
        assert sum(counts.values()) == b_tags
        assert len(load_dataset(output, limit=5)) == 5


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def _sample(text: str, tags: list[str]) -> dict:
    return {"text": text, "tokens": text.split(), "ner_tag_labels": tags}


class TestEvaluate:
    def test_align_entities_to_words(self) -> None:
        text = "John Doe lives in New York City."
        entities = [
            Entity(EntityType.PERSON, "John Doe", 0, 8, 0.9),
            Entity(EntityType.LOCATION, "New York City", 18, 31, 0.9),
        ]
        assert align_entities_to_words(text, entities) == [
            "B-PERSON",
            "I-PERSON",
            "O",
            "O",
            "B-LOCATION",
            "I-LOCATION",
            "I-LOCATION",
        ]

    def test_pattern_detector_scores_perfectly_on_structured_samples(self) -> None:
        detector = HybridDetector(mode=DetectionMode.PATTERN_ONLY)
        samples = [
            _sample("Email jane@example.com today.", ["O", "B-EMAIL", "O"]),
            _sample("Call 555-123-4567 now.", ["O", "B-PHONE", "O"]),
        ]
        scores = evaluate_detector(detector, samples, num_warmup=1)

        assert scores["metrics"]["macro_f1"] == pytest.approx(1.0)
        assert set(scores["latency"]) == {"p50_ms", "p95_ms", "p99_ms", "mean_ms", "max_ms"}
        assert "EMAIL" in scores["classification_report"]

    def test_missed_entity_lowers_recall(self) -> None:
        detector = HybridDetector(mode=DetectionMode.PATTERN_ONLY)
        samples = [_sample("Meet in Lisbon today.", ["O", "O", "B-LOCATION", "O"])]
        scores = evaluate_detector(detector, samples, num_warmup=0)
        assert scores["metrics"]["macro_recall"] == 0.0

    def test_run_evaluation_and_save(self, tmp_path) -> None:
        dataset = tmp_path / "synthetic.jsonl"
        generate_dataset(8, dataset, seed=5)
        settings = Settings(_env_file=None, ner_enabled=False, detection_mode="pattern_only")

        results = run_evaluation(settings, dataset, limit=4)
        assert results["mode"] == "pattern_only"
        assert results["num_samples"] == 4
        assert results["ner_model"] is None
        assert 0.0 <= results["metrics"]["macro_f1"] <= 1.0
        assert results["memory"]["rss_peak_mb"] > 0

        saved = save_results(results, tmp_path / "results")
        assert json.loads(saved.read_text())["mode"] == "pattern_only"

    def test_reports_print_every_field(self, tmp_path, capsys) -> None:
        dataset = tmp_path / "synthetic.jsonl"
        generate_dataset(3, dataset, seed=9)
        settings = Settings(_env_file=None, ner_enabled=False, detection_mode="pattern_only")
        results = run_evaluation(settings, dataset)
        capsys.readouterr()

        print_results(results)
        print_comparison_table([results, results])
        out = capsys.readouterr().out

        assert "pattern_only mode, optimal fusion" in out
        for _, _, label, _ in REPORT_FIELDS:
            assert label in out
        assert out.count("\npattern_only ") == 2
