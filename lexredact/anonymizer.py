"""
Consistent, reversible placeholder redaction.

The Anonymizer turns detected entities into placeholders and rewrites the
text left to right:

  PERSON / ORGANIZATION / LOCATION  ->  [PERSON-A], [ORGANIZATION-B], ...
  DATE, MONEY, EMAIL, PHONE, CASE,  ->  [DATE-1], [AMOUNT-2], [EMAIL-1],
  IDENTIFICATION, TECHNICAL_ID          [PHONE-1], [CASE-1], [ID-3], [TECH-ID-1]

Letter counters use spreadsheet-column encoding (1 -> A, 26 -> Z,
27 -> AA). A mention whose verbatim text already has a placeholder reuses
it, so repeated mentions stay consistent across a call and, with
consistent_replacement, across a whole batch. LAW entities are never
replaced.

The replacement table and counters are shared mutable state guarded by a
single lock held for the whole of anonymize() / anonymize_batch().

HIPAA/GDPR: No raw entity text is logged by this module.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace

from lexredact.entity_linker import EntityLinker
from lexredact.pattern_detector import PatternDetector
from lexredact.schemas import (
    AnonymizationResult,
    AnonymizationSettings,
    Entity,
    EntityType,
)

logger = logging.getLogger(__name__)

LETTER_TYPES: frozenset[EntityType] = frozenset(
    {EntityType.PERSON, EntityType.ORGANIZATION, EntityType.LOCATION}
)

PLACEHOLDER_PREFIX: dict[EntityType, str] = {
    EntityType.PERSON: "PERSON",
    EntityType.ORGANIZATION: "ORGANIZATION",
    EntityType.LOCATION: "LOCATION",
    EntityType.DATE: "DATE",
    EntityType.MONEY: "AMOUNT",
    EntityType.EMAIL: "EMAIL",
    EntityType.PHONE: "PHONE",
    EntityType.CASE: "CASE",
    EntityType.IDENTIFICATION: "ID",
    EntityType.TECHNICAL_IDENTIFIER: "TECH-ID",
}


def to_letter(n: int) -> str:
    """Spreadsheet-column letters for a 1-based counter. 0 maps to "A"."""
    if n <= 0:
        return "A"
    letters = ""
    while n > 0:
        n, remainder = divmod(n - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def format_placeholder(entity_type: EntityType, counter: int) -> str:
    index = to_letter(counter) if entity_type in LETTER_TYPES else str(counter)
    return f"[{PLACEHOLDER_PREFIX[entity_type]}-{index}]"


class Anonymizer:
    """Stateful redactor with a per-instance replacement table.

    Args:
        detector: Pattern detector used by anonymize(). A default one is
            built if omitted.
        linker: Entity linker used when settings.link_person_variants is
            set. A fresh one is built if omitted.
    """

    def __init__(
        self,
        detector: PatternDetector | None = None,
        linker: EntityLinker | None = None,
    ) -> None:
        self.detector = detector or PatternDetector()
        self.linker = linker or EntityLinker()
        self._lock = threading.Lock()
        self._replacement_map: dict[str, str] = {}
        self._person_map: dict[str, str] = {}
        self._counters: dict[EntityType, int] = {}

    # -- public API ------------------------------------------------------------

    def anonymize(
        self, text: str, settings: AnonymizationSettings | None = None
    ) -> AnonymizationResult:
        """Detect entities with the pattern layer and redact them."""
        settings = settings or AnonymizationSettings()
        with self._lock:
            return self._anonymize(text, self._detect(text), settings)

    def anonymize_entities(
        self,
        text: str,
        entities: list[Entity],
        settings: AnonymizationSettings | None = None,
    ) -> AnonymizationResult:
        """Redact a precomputed entity list, e.g. from HybridDetector.detect()."""
        settings = settings or AnonymizationSettings()
        with self._lock:
            return self._anonymize(text, list(entities), settings)

    def anonymize_batch(
        self, texts: list[str], settings: AnonymizationSettings | None = None
    ) -> list[AnonymizationResult]:
        settings = settings or AnonymizationSettings()
        with self._lock:
            return [self._anonymize(text, self._detect(text), settings) for text in texts]

    def clear_replacements(self) -> None:
        with self._lock:
            self._reset()

    def get_statistics(self) -> dict[EntityType, int]:
        """Copy of the per-type placeholder counters."""
        with self._lock:
            return dict(self._counters)

    @staticmethod
    def restore(anonymized_text: str, mapping: dict[str, str]) -> str:
        """Replace each placeholder in mapping with its original text."""
        result = anonymized_text
        for placeholder, original in mapping.items():
            result = result.replace(placeholder, original)
        return result

    # -- internals (lock held) -------------------------------------------------

    def _reset(self) -> None:
        self._replacement_map.clear()
        self._person_map.clear()
        self._counters.clear()
        self.linker.clear()

    def _detect(self, text: str) -> list[Entity]:
        return self.detector.detect(text) + self.detector.detect_person_names(text)

    def _anonymize(
        self, text: str, entities: list[Entity], settings: AnonymizationSettings
    ) -> AnonymizationResult:
        if not settings.consistent_replacement:
            self._reset()

        entities = self._select(text, entities, settings)
        entities = [
            replace(entity, replacement=self._replacement_for(entity, settings))
            for entity in entities
        ]

        logger.debug(
            "Anonymized %d entities (%d distinct placeholders so far)",
            len(entities),
            len(self._replacement_map),
        )

        return AnonymizationResult(
            original_text=text,
            anonymized_text=self._apply(text, entities),
            entities=entities,
            replacements=[(e.text, e.replacement or "") for e in entities],
        )

    def _select(
        self, text: str, entities: list[Entity], settings: AnonymizationSettings
    ) -> list[Entity]:
        """Validate, filter and de-overlap entities, sorted by start."""
        valid = [e for e in entities if 0 <= e.start < e.end <= len(text)]
        if len(valid) != len(entities):
            logger.warning(
                "Dropped %d entities with empty or out-of-range spans",
                len(entities) - len(valid),
            )

        valid.sort(key=lambda e: e.start)
        confident = [e for e in valid if e.confidence >= settings.confidence_threshold]
        resolved = PatternDetector.remove_overlaps(confident)

        selected = [e for e in resolved if e.entity_type in settings.entity_types]
        if settings.preserve_legal_references:
            selected = [e for e in selected if e.entity_type is not EntityType.LAW]
        return selected

    def _replacement_for(self, entity: Entity, settings: AnonymizationSettings) -> str:
        if not entity.entity_type.should_anonymize():
            return entity.text

        existing = self._replacement_map.get(entity.text)
        if existing is not None:
            return existing

        if entity.entity_type is EntityType.PERSON and settings.link_person_variants:
            canonical = self.linker.resolve(entity.text)
            placeholder = self._person_map.get(canonical)
            if placeholder is None:
                placeholder = self._next_placeholder(entity.entity_type)
                self._person_map[canonical] = placeholder
        else:
            placeholder = self._next_placeholder(entity.entity_type)

        self._replacement_map[entity.text] = placeholder
        return placeholder

    def _next_placeholder(self, entity_type: EntityType) -> str:
        counter = self._counters.get(entity_type, 0) + 1
        self._counters[entity_type] = counter
        return format_placeholder(entity_type, counter)

    @staticmethod
    def _apply(text: str, entities: list[Entity]) -> str:
        """Left-to-right rewrite; entities must be sorted and non-overlapping."""
        parts: list[str] = []
        cursor = 0
        for entity in entities:
            parts.append(text[cursor : entity.start])
            parts.append(entity.replacement if entity.replacement is not None else entity.text)
            cursor = entity.end
        parts.append(text[cursor:])
        return "".join(parts)
