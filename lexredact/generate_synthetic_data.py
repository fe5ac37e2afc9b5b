"""
Synthetic legal-text dataset generator for LexRedact benchmarking.

Generates word-level BIO-tagged samples from contract, court-filing and
correspondence templates filled with Faker values. Tags use the internal
EntityType names (B-PERSON, I-ORGANIZATION, B-LAW, ...), so LAW spans are
labeled too: the benchmark checks they are detected, the anonymizer is
what keeps them verbatim.

Output format: JSONL, one record per sample with the source `text`, its
whitespace `tokens` and the aligned `ner_tags`.

Usage:
    python -m lexredact.generate_synthetic_data --num-samples 500 --output data/synthetic.jsonl

HIPAA/GDPR: All data is purely synthetic. No real PII is used.
"""

import argparse
import json
import random
import re
from collections.abc import Callable
from pathlib import Path

from faker import Faker

from lexredact.schemas import EntityType

LABEL_TYPES: list[str] = [t.value for t in EntityType if t is not EntityType.TECHNICAL_IDENTIFIER]

# BIO label vocabulary shared with evaluate.py.
LABEL_LIST: list[str] = ["O"] + [
    f"{prefix}-{etype}" for etype in LABEL_TYPES for prefix in ("B", "I")
]

LABEL_TO_ID: dict[str, int] = {label: i for i, label in enumerate(LABEL_LIST)}

Sample = tuple[str, list[tuple[str, str]]]


def tokenize_and_label(
    text: str, entities: list[tuple[str, str]]
) -> tuple[list[str], list[str]]:
    """Whitespace-tokenize text and derive word-level BIO tags.

    Entity boundaries come from exact string matches of the inserted
    values. A word takes the type of the first labeled character it
    contains; consecutive words of the same type continue with I-.

    Args:
        text: The full sentence with entities already substituted in.
        entities: (surface_form, entity_type) pairs, e.g.
                  ("John Smith", "PERSON").

    Returns:
        (tokens, ner_tags) where both lists have the same length.
    """
    char_labels: list[str] = ["O"] * len(text)

    for entity_text, entity_type in entities:
        start = 0
        while True:
            idx = text.find(entity_text, start)
            if idx == -1:
                break
            span = char_labels[idx : idx + len(entity_text)]
            if all(c == "O" for c in span):
                char_labels[idx : idx + len(entity_text)] = [entity_type] * len(entity_text)
            start = idx + len(entity_text)

    tokens: list[str] = []
    ner_tags: list[str] = []
    previous_type: str | None = None

    for match in re.finditer(r"\S+", text):
        tokens.append(match.group())
        labeled = [lbl for lbl in char_labels[match.start() : match.end()] if lbl != "O"]
        if not labeled:
            ner_tags.append("O")
            previous_type = None
            continue

        entity_type = labeled[0]
        prefix = "I" if previous_type == entity_type else "B"
        ner_tags.append(f"{prefix}-{entity_type}")
        previous_type = entity_type

    return tokens, ner_tags


# ---------------------------------------------------------------------------
# Template generators
# ---------------------------------------------------------------------------


class LegalSampleGenerator:
    """Fills legal templates with Faker values. Seeded for reproducibility."""

    def __init__(self, seed: int = 42) -> None:
        self.fake = Faker()
        self.fake.seed_instance(seed)
        self.rng = random.Random(seed)

    # -- value helpers -------------------------------------------------------

    def person(self) -> str:
        return f"{self.fake.first_name()} {self.fake.last_name()}"

    def organization(self) -> str:
        suffix = self.rng.choice(["Inc.", "LLC", "Ltd", "Corp.", "GmbH"])
        return f"{self.fake.last_name()} {suffix}"

    def date(self) -> str:
        return self.fake.date_between(start_date="-10y", end_date="today").strftime("%B %d, %Y")

    def money(self) -> str:
        amount = self.rng.randint(1_000, 5_000_000)
        return self.rng.choice([f"${amount:,}", f"€{amount:,}", f"{amount:,} USD"])

    def phone(self) -> str:
        a = self.rng.randint(200, 999)
        b = self.rng.randint(200, 999)
        c = self.rng.randint(1000, 9999)
        return self.rng.choice([f"({a}) {b}-{c}", f"{a}-{b}-{c}"])

    def ssn(self) -> str:
        area = self.rng.choice([n for n in range(1, 900) if n != 666])
        return f"{area:03d}-{self.rng.randint(1, 99):02d}-{self.rng.randint(1, 9999):04d}"

    def case_number(self) -> str:
        return self.rng.choice(
            [
                f"Case No. {self.rng.randint(2010, 2025)}-{self.rng.randint(100, 9999)}",
                f"{self.rng.randint(1, 9)}:{self.rng.randint(10, 25)}-cv-{self.rng.randint(1000, 99999):05d}",
            ]
        )

    def law(self) -> str:
        return self.rng.choice(
            ["Article 6 GDPR", "Article 17 GDPR", "Section 230", "42 U.S.C. § 1983", "GDPR"]
        )

    # -- templates -------------------------------------------------------------

    def contract_sample(self) -> Sample:
        p, o, loc, d, m = self.person(), self.organization(), self.fake.city(), self.date(), self.money()
        templates: list[Callable[[], Sample]] = [
            lambda: (
                f"This agreement is made on {d} between {p} and {o} of {loc}.",
                [(d, "DATE"), (p, "PERSON"), (o, "ORGANIZATION"), (loc, "LOCATION")],
            ),
            lambda: (
                f"{o} agrees to pay {p} the sum of {m} no later than {d}.",
                [(o, "ORGANIZATION"), (p, "PERSON"), (m, "MONEY"), (d, "DATE")],
            ),
        ]
        return self.rng.choice(templates)()

    def filing_sample(self) -> Sample:
        p, q, c, law, d = self.person(), self.person(), self.case_number(), self.law(), self.date()
        templates: list[Callable[[], Sample]] = [
            lambda: (
                f"In {c}, plaintiff {p} alleges that defendant {q} violated {law}.",
                [(c, "CASE"), (p, "PERSON"), (q, "PERSON"), (law, "LAW")],
            ),
            lambda: (
                f"The hearing in {c} is scheduled for {d}. Counsel for {p} will attend.",
                [(c, "CASE"), (d, "DATE"), (p, "PERSON")],
            ),
        ]
        return self.rng.choice(templates)()

    def correspondence_sample(self) -> Sample:
        p, e, ph, s, law = self.person(), self.fake.email(), self.phone(), self.ssn(), self.law()
        templates: list[Callable[[], Sample]] = [
            lambda: (
                f"Please contact {p} at {e} or {ph} about the data request.",
                [(p, "PERSON"), (e, "EMAIL"), (ph, "PHONE")],
            ),
            lambda: (
                f"The claimant {p} (SSN {s}) relies on {law} for erasure.",
                [(p, "PERSON"), (s, "IDENTIFICATION"), (law, "LAW")],
            ),
        ]
        return self.rng.choice(templates)()

    def sample(self) -> Sample:
        generator = self.rng.choice(
            [self.contract_sample, self.filing_sample, self.correspondence_sample]
        )
        return generator()


def generate_samples(num_samples: int, seed: int = 42) -> list[dict]:
    """Build num_samples labeled records in memory."""
    generator = LegalSampleGenerator(seed)
    samples: list[dict] = []
    for _ in range(num_samples):
        text, entities = generator.sample()
        tokens, ner_tags = tokenize_and_label(text, entities)
        samples.append(
            {
                "text": text,
                "tokens": tokens,
                "ner_tags": [LABEL_TO_ID.get(tag, 0) for tag in ner_tags],
                "ner_tag_labels": ner_tags,
            }
        )
    return samples


def generate_dataset(num_samples: int, output_path: Path, seed: int = 42) -> dict[str, int]:
    """Generate and write a JSONL dataset.

    Returns:
        Dictionary of entity type counts (B- tags) for the summary.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    samples = generate_samples(num_samples, seed)

    entity_counts: dict[str, int] = {}
    with open(output_path, "w") as f:
        for sample in samples:
            f.write(json.dumps(sample) + "\n")
            for tag in sample["ner_tag_labels"]:
                if tag.startswith("B-"):
                    entity_counts[tag[2:]] = entity_counts.get(tag[2:], 0) + 1

    return entity_counts


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate a synthetic legal NER dataset for LexRedact benchmarking"
    )
    parser.add_argument(
        "--num-samples",
        type=int,
        default=500,
        help="Total number of samples to generate (default: 500)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="data/synthetic.jsonl",
        help="Output JSONL file path (default: data/synthetic.jsonl)",
    )
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    output_path = Path(args.output)
    print(f"Generating {args.num_samples} synthetic legal samples...")
    entity_counts = generate_dataset(args.num_samples, output_path, args.seed)

    print(f"\nWrote {args.num_samples} samples to {output_path}")
    print("\nEntity distribution:")
    for etype, count in sorted(entity_counts.items(), key=lambda x: -x[1]):
        print(f"  {etype:>14}: {count}")
    print(f"  {'TOTAL':>14}: {sum(entity_counts.values())}")


if __name__ == "__main__":
    main()
