"""
Shared data types for the LexRedact detection and redaction pipeline.

Kept in one module so the pattern layer, the NER layer, the hybrid
detector and the anonymizer can exchange entities without importing
each other.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class EntityType(str, Enum):
    """Internal entity taxonomy (11 types)."""

    PERSON = "PERSON"
    ORGANIZATION = "ORGANIZATION"
    LOCATION = "LOCATION"
    DATE = "DATE"
    MONEY = "MONEY"
    LAW = "LAW"
    CASE = "CASE"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    IDENTIFICATION = "IDENTIFICATION"
    TECHNICAL_IDENTIFIER = "TECHNICAL_IDENTIFIER"

    def should_anonymize(self) -> bool:
        """Legal references are preserved; every other type is redacted."""
        return self is not EntityType.LAW

    def __str__(self) -> str:
        return self.value


@dataclass
class Entity:
    """A single detected entity with span and metadata.

    Attributes:
        entity_type: Internal type of the entity.
        text: Surface form, always ``source_text[start:end]``.
        start: Start offset (inclusive) into the source text.
        end: End offset (exclusive) into the source text.
        confidence: Score in [0.0, 1.0]. 0.85 for patterns, 0.75 for the
            name heuristic, softmax average for NER, service score for
            the remote layer.
        replacement: Placeholder assigned by the Anonymizer.
        source: Layer that produced this entity: "pattern", "ner" or
            "presidio".
    """

    entity_type: EntityType
    text: str
    start: int
    end: int
    confidence: float
    replacement: str | None = None
    source: str = "pattern"

    def __repr__(self) -> str:
        """Mask raw text so entities can be logged without leaking PII."""
        return (
            f"Entity(entity_type={self.entity_type.value!r}, text='***', "
            f"start={self.start}, end={self.end}, "
            f"confidence={self.confidence}, source={self.source!r})"
        )

    def __str__(self) -> str:
        return (
            f"[{self.source}:{self.entity_type.value} "
            f"({self.start}:{self.end}) conf={self.confidence:.2f}]"
        )

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: Entity) -> bool:
        """Half-open interval overlap test."""
        return not (self.end <= other.start or self.start >= other.end)

    def same_span(self, other: Entity) -> bool:
        return (
            self.entity_type == other.entity_type
            and self.start == other.start
            and self.end == other.end
        )

    def to_dict(self, *, _unsafe_include_text: bool = False) -> dict:
        """Return a PII-safe dictionary for JSON serialization.

        Raw text and the replacement's source are masked unless
        _unsafe_include_text=True is passed explicitly.
        """
        return {
            "entity_type": self.entity_type.value,
            "text": self.text if _unsafe_include_text else "***",
            "start": self.start,
            "end": self.end,
            "confidence": self.confidence,
            "replacement": self.replacement,
            "source": self.source,
        }


def _default_entity_types() -> set[EntityType]:
    return {
        EntityType.PERSON,
        EntityType.ORGANIZATION,
        EntityType.LOCATION,
        EntityType.DATE,
        EntityType.EMAIL,
        EntityType.PHONE,
        EntityType.IDENTIFICATION,
    }


@dataclass
class AnonymizationSettings:
    """Per-call anonymization options.

    Attributes:
        entity_types: Types to redact. Others pass through untouched.
        confidence_threshold: Minimum confidence for an entity to be redacted.
        preserve_legal_references: Drop LAW entities before redaction.
        consistent_replacement: Keep the replacement table across calls so
            identical mentions get identical placeholders. When False the
            table and counters are reset at the start of every call.
        language: Language code passed to language-aware layers.
        link_person_variants: Key PERSON placeholders on the EntityLinker
            canonical form instead of the verbatim text, so "Mr. John Doe"
            and "John Doe" share a placeholder. Matching is heuristic: any two
            multi-word names ending in the same surname match ("John Doe" and
            "Jane Doe" share a placeholder), since the surname initial always
            counts as a shared initial.
    """

    entity_types: set[EntityType] = field(default_factory=_default_entity_types)
    confidence_threshold: float = 0.7
    preserve_legal_references: bool = True
    consistent_replacement: bool = True
    language: str = "en"
    link_person_variants: bool = False


@dataclass
class AnonymizationResult:
    """Output of an anonymization pass."""

    original_text: str
    anonymized_text: str
    entities: list[Entity] = field(default_factory=list)
    replacements: list[tuple[str, str]] = field(default_factory=list)

    @property
    def mapping(self) -> dict[str, str]:
        """{placeholder -> original text}, first mention wins."""
        mapping: dict[str, str] = {}
        for original, replacement in self.replacements:
            if replacement and replacement != original:
                mapping.setdefault(replacement, original)
        return mapping

    def __repr__(self) -> str:
        return (
            f"AnonymizationResult(anonymized_text={self.anonymized_text!r}, "
            f"entities={self.entities!r}, "
            f"replacements={len(self.replacements)})"
        )

    def to_dict(self) -> dict:
        """Return a PII-safe dictionary: originals in the table are masked."""
        return {
            "anonymized_text": self.anonymized_text,
            "entities": [e.to_dict() for e in self.entities],
            "replacements": [("***", r) for _, r in self.replacements],
        }


# ---------------------------------------------------------------------------
# NER layer types
# ---------------------------------------------------------------------------


class NerLabel(str, Enum):
    """IOB2 labels of the default 9-label token classification head."""

    O = "O"
    B_PER = "B-PER"
    I_PER = "I-PER"
    B_ORG = "B-ORG"
    I_ORG = "I-ORG"
    B_LOC = "B-LOC"
    I_LOC = "I-LOC"
    B_MISC = "B-MISC"
    I_MISC = "I-MISC"

    @classmethod
    def from_name(cls, name: str) -> NerLabel | None:
        try:
            return cls(name)
        except ValueError:
            return None

    @classmethod
    def from_id(cls, label_id: int) -> NerLabel | None:
        """Resolve an id against the default label order."""
        if 0 <= label_id < len(DEFAULT_LABEL_MAP):
            return cls(DEFAULT_LABEL_MAP[label_id])
        return None

    def to_id(self) -> int:
        return DEFAULT_LABEL_MAP.index(self.value)

    @property
    def is_begin(self) -> bool:
        return self.value.startswith("B-")

    @property
    def is_inside(self) -> bool:
        return self.value.startswith("I-")

    @property
    def entity_type(self) -> str | None:
        """Entity type without the B-/I- prefix (PER, ORG, LOC, MISC)."""
        if self is NerLabel.O:
            return None
        return self.value[2:]


DEFAULT_LABEL_MAP: list[str] = [
    "O",
    "B-PER",
    "I-PER",
    "B-ORG",
    "I-ORG",
    "B-LOC",
    "I-LOC",
    "B-MISC",
    "I-MISC",
]


@dataclass
class TokenPrediction:
    """Prediction for one word after sub-word merging."""

    token: str
    label: NerLabel
    confidence: float
    start: int
    end: int


@dataclass
class NerEntity:
    """A merged run of token predictions sharing one entity type.

    ``text`` is the space-joined surface form of the constituent tokens and
    may differ from the source slice; ``confidence`` is their mean.
    """

    text: str
    entity_type: str
    confidence: float
    start: int
    end: int
    tokens: list[TokenPrediction] = field(default_factory=list)


@dataclass
class NerResult:
    text: str
    entities: list[NerEntity]
    token_predictions: list[TokenPrediction]
    inference_time_ms: float


@dataclass
class NerModelConfig:
    """Token classification model settings.

    Attributes:
        model_id: Hugging Face identifier or local path.
        max_sequence_length: Tokens beyond this are truncated.
        label_map: label_map[i] is the IOB2 name of label id i.
    """

    model_id: str = "dslim/bert-base-NER"
    max_sequence_length: int = 512
    label_map: list[str] = field(default_factory=lambda: list(DEFAULT_LABEL_MAP))

    @property
    def num_labels(self) -> int:
        return len(self.label_map)

    def label_for(self, label_id: int) -> NerLabel | None:
        if 0 <= label_id < len(self.label_map):
            return NerLabel.from_name(self.label_map[label_id])
        return None
