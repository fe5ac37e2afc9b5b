"""
Multi-layer entity detection with fusion.

Three layers feed the HybridDetector:

  1. PatternDetector: regex + name heuristic, always available.
  2. NerPipeline: transformer token classification, optional.
  3. PresidioClient: remote analyzer over HTTP, optional.

DetectionMode selects which layers run. A layer that is not available
degrades the mode instead of raising:

  NER_ONLY      -> PATTERN_ONLY when the model is not ready
  HYBRID        -> pattern results only when the model is not ready
  FULL          -> HYBRID when the remote layer is disabled or fails
  PRESIDIO_ONLY -> HYBRID when the remote layer is disabled or fails

A ModelOutputError from the NER layer is never swallowed.

Fusion merges a base list with the next layer's candidates, one round
per added layer (pattern+NER, then +remote). Remote IDENTIFICATION,
EMAIL and PHONE candidates get a +0.05 weight boost.

  OPTIMAL (default): weighted interval scheduling over base + candidates.
      Picks the non-overlapping subset with the highest total weight
      (confidence + boost). Ties keep more base entities, then fewer
      entities overall.
  GREEDY: pairwise replacement in candidate order. A candidate that
      overlaps nothing is appended; one that overlaps exactly one kept
      entity replaces it if its weight is strictly higher; one that
      overlaps several is dropped.

Both strategies finish by sorting by start and removing exact duplicates
(same type and span), so every returned list is non-overlapping.
"""

from __future__ import annotations

import bisect
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

from lexredact.exceptions import RemoteServiceError
from lexredact.ner_pipeline import NerPipeline
from lexredact.pattern_detector import PatternDetector
from lexredact.presidio_client import PresidioClient
from lexredact.schemas import Entity, EntityType, NerResult
from lexredact.type_mapping import ConfidenceAdjuster, EntityTypeMapper

logger = logging.getLogger(__name__)

# IOB2 entity types produced by the NER head. MISC has no internal type.
NER_TYPE_TO_ENTITY: dict[str, EntityType] = {
    "PER": EntityType.PERSON,
    "ORG": EntityType.ORGANIZATION,
    "LOC": EntityType.LOCATION,
}

REMOTE_BOOST = 0.05
REMOTE_BOOSTED_TYPES: frozenset[EntityType] = frozenset(
    {EntityType.IDENTIFICATION, EntityType.EMAIL, EntityType.PHONE}
)


class DetectionMode(str, Enum):
    PATTERN_ONLY = "pattern_only"
    NER_ONLY = "ner_only"
    HYBRID = "hybrid"
    FULL = "full"
    PRESIDIO_ONLY = "presidio_only"


class FusionStrategy(str, Enum):
    OPTIMAL = "optimal"
    GREEDY = "greedy"


@dataclass(frozen=True)
class LayerStatus:
    """Availability of each detection layer."""

    pattern: bool = True
    ner: bool = False
    presidio: bool = False

    def recommended_mode(self) -> DetectionMode:
        """Richest mode whose layers are all available."""
        if self.presidio and self.ner:
            return DetectionMode.FULL
        if self.ner:
            return DetectionMode.HYBRID
        return DetectionMode.PATTERN_ONLY

    def available_layers(self) -> int:
        return sum((self.pattern, self.ner, self.presidio))


# ---------------------------------------------------------------------------
# Fusion
# ---------------------------------------------------------------------------


def remote_boost(entity: Entity) -> float:
    return REMOTE_BOOST if entity.entity_type in REMOTE_BOOSTED_TYPES else 0.0


def _no_boost(entity: Entity) -> float:
    return 0.0


def finalize(entities: list[Entity]) -> list[Entity]:
    """Sort by start and drop exact duplicates (same type and span)."""
    ordered = sorted(entities, key=lambda e: (e.start, e.end))
    result: list[Entity] = []
    for entity in ordered:
        if result and result[-1].same_span(entity):
            continue
        result.append(entity)
    return result


def merge_greedy(
    base: list[Entity],
    candidates: list[Entity],
    boost: Callable[[Entity], float] = _no_boost,
) -> list[Entity]:
    merged = list(base)
    for candidate in candidates:
        overlapping = [i for i, e in enumerate(merged) if e.overlaps(candidate)]
        if not overlapping:
            merged.append(candidate)
        elif len(overlapping) == 1:
            idx = overlapping[0]
            if candidate.confidence + boost(candidate) > merged[idx].confidence:
                merged[idx] = candidate
    return finalize(merged)


def merge_optimal(
    base: list[Entity],
    candidates: list[Entity],
    boost: Callable[[Entity], float] = _no_boost,
) -> list[Entity]:
    """Weighted interval scheduling over base + candidates.

    Base entities are weighted by their confidence; candidates by
    confidence + boost(candidate). Returned entities keep their original
    confidence.
    """
    # (entity, weight, is_base). An exact duplicate of a base entity only
    # survives if it strictly outweighs it.
    items: dict[tuple, tuple[Entity, float, bool]] = {}
    for entity in base:
        key = (entity.entity_type, entity.start, entity.end)
        current = items.get(key)
        if current is None or entity.confidence > current[1]:
            items[key] = (entity, entity.confidence, True)
    for entity in candidates:
        key = (entity.entity_type, entity.start, entity.end)
        weight = entity.confidence + boost(entity)
        current = items.get(key)
        if current is None or weight > current[1]:
            items[key] = (entity, weight, False)

    ordered = sorted(items.values(), key=lambda item: (item[0].end, item[0].start))
    ends = [item[0].end for item in ordered]

    def score(value: tuple[float, int, int]) -> tuple[float, int, int]:
        return (round(value[0], 9), value[1], value[2])

    # best[j]: (weight sum, base count, -entity count) over the first j items
    best: list[tuple[float, int, int]] = [(0.0, 0, 0)]
    previous: list[int] = [0]
    taken: list[bool] = [False]
    for j, (entity, weight, is_base) in enumerate(ordered, start=1):
        # Items ending at or before this start are all compatible.
        p = bisect.bisect_right(ends, entity.start, 0, j - 1)
        prior = best[p]
        include = (prior[0] + weight, prior[1] + int(is_base), prior[2] - 1)
        if score(include) > score(best[j - 1]):
            best.append(include)
            taken.append(True)
        else:
            best.append(best[j - 1])
            taken.append(False)
        previous.append(p)

    selected: list[Entity] = []
    j = len(ordered)
    while j > 0:
        if taken[j]:
            selected.append(ordered[j - 1][0])
            j = previous[j]
        else:
            j -= 1
    return finalize(selected)


# ---------------------------------------------------------------------------
# Reader/writer lock for read-mostly configuration
# ---------------------------------------------------------------------------


class _ReadWriteLock:
    """Many concurrent readers or one writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# ---------------------------------------------------------------------------
# HybridDetector
# ---------------------------------------------------------------------------


class HybridDetector:
    """Runs the configured detection layers and fuses their results.

    Args:
        pattern_detector: Layer 1. A default PatternDetector if omitted.
        ner_pipeline: Layer 2, or None if no model is configured.
        presidio_client: Layer 3, or None if no remote service is configured.
        mapper: Remote-to-internal type mapper.
        adjuster: Context confidence adjuster for remote results.
        mode: Initial detection mode.
        language: Initial working language for the remote layer.
        fusion: Fusion strategy used for every merge round.
    """

    def __init__(
        self,
        pattern_detector: PatternDetector | None = None,
        ner_pipeline: NerPipeline | None = None,
        presidio_client: PresidioClient | None = None,
        mapper: EntityTypeMapper | None = None,
        adjuster: ConfidenceAdjuster | None = None,
        mode: DetectionMode = DetectionMode.HYBRID,
        language: str = "en",
        fusion: FusionStrategy = FusionStrategy.OPTIMAL,
    ) -> None:
        self.pattern_detector = pattern_detector or PatternDetector()
        self.ner_pipeline = ner_pipeline
        self.presidio_client = presidio_client
        self.mapper = mapper or EntityTypeMapper()
        self.adjuster = adjuster or ConfidenceAdjuster()
        self.fusion = fusion
        self._config_lock = _ReadWriteLock()
        self._mode = mode
        self._language = language

    # -- configuration -----------------------------------------------------

    @property
    def mode(self) -> DetectionMode:
        with self._config_lock.read():
            return self._mode

    def set_mode(self, mode: DetectionMode) -> None:
        mode = DetectionMode(mode)
        with self._config_lock.write():
            self._mode = mode
        logger.info("Detection mode set to %s", mode.value)

    @property
    def language(self) -> str:
        with self._config_lock.read():
            return self._language

    def set_language(self, language: str) -> None:
        with self._config_lock.write():
            self._language = language

    def __enter__(self) -> HybridDetector:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Release the remote analyzer connection pool, if any."""
        if self.presidio_client is not None:
            self.presidio_client.close()

    def is_ner_available(self) -> bool:
        return self.ner_pipeline is not None and self.ner_pipeline.is_ready()

    def is_presidio_available(self) -> bool:
        return self.presidio_client is not None and self.presidio_client.is_enabled()

    def layer_status(self) -> LayerStatus:
        return LayerStatus(
            pattern=True,
            ner=self.is_ner_available(),
            presidio=self.is_presidio_available(),
        )

    def auto_configure(self) -> DetectionMode:
        """Switch to the richest fully available mode and return it."""
        mode = self.layer_status().recommended_mode()
        self.set_mode(mode)
        return mode

    # -- detection -----------------------------------------------------------

    def detect(self, text: str, language: str | None = None) -> list[Entity]:
        """Detect entities in text with the current mode.

        Args:
            text: Source text; all offsets index into it.
            language: Overrides the working language for this call.

        Returns:
            Non-overlapping entities sorted by start offset.

        Raises:
            ModelOutputError: If the NER model returns malformed logits.
        """
        with self._config_lock.read():
            mode = self._mode
            language = language or self._language

        if mode is DetectionMode.PATTERN_ONLY:
            return self.detect_with_patterns(text)
        if mode is DetectionMode.NER_ONLY:
            return self.detect_with_ner(text)
        if mode is DetectionMode.HYBRID:
            return self.detect_hybrid(text)
        if mode is DetectionMode.FULL:
            return self.detect_full(text, language)
        return self.detect_with_presidio(text, language)

    def detect_with_patterns(self, text: str) -> list[Entity]:
        return self.pattern_detector.detect_all(text)

    def detect_with_ner(self, text: str) -> list[Entity]:
        if not self.is_ner_available():
            logger.debug("NER model not ready, falling back to patterns")
            return self.detect_with_patterns(text)
        return self._ner_entities(text)

    def detect_hybrid(self, text: str) -> list[Entity]:
        pattern_entities = self.detect_with_patterns(text)
        if not self.is_ner_available():
            return pattern_entities
        return self._merge(pattern_entities, self._ner_entities(text))

    def detect_full(self, text: str, language: str = "en") -> list[Entity]:
        hybrid_entities = self.detect_hybrid(text)
        remote_entities = self._remote_entities(text, language)
        if remote_entities is None:
            return hybrid_entities
        return self._merge(hybrid_entities, remote_entities, remote_boost)

    def detect_with_presidio(self, text: str, language: str = "en") -> list[Entity]:
        remote_entities = self._remote_entities(text, language)
        if remote_entities is None:
            return self.detect_hybrid(text)
        return self._merge([], remote_entities, remote_boost)

    # -- layer adapters ------------------------------------------------------

    def _merge(
        self,
        base: list[Entity],
        candidates: list[Entity],
        boost: Callable[[Entity], float] = _no_boost,
    ) -> list[Entity]:
        if self.fusion is FusionStrategy.GREEDY:
            return merge_greedy(base, candidates, boost)
        return merge_optimal(base, candidates, boost)

    def _ner_entities(self, text: str) -> list[Entity]:
        return ner_result_to_entities(self.ner_pipeline.predict(text), text)

    def _remote_entities(self, text: str, language: str) -> list[Entity] | None:
        """Remote results as internal entities, or None if the layer is unusable."""
        if not self.is_presidio_available():
            logger.debug("Remote analyzer disabled, falling back to hybrid")
            return None
        try:
            remote = self.presidio_client.analyze(text, language)
        except RemoteServiceError as exc:
            logger.warning("Remote analyzer unavailable, falling back: %s", exc)
            return None

        entities = self.mapper.convert_entities(remote, text)
        return self.adjuster.adjust_entities(entities, text)


def ner_result_to_entities(result: NerResult, text: str) -> list[Entity]:
    """Map PER/ORG/LOC NER entities to internal entities; MISC is dropped."""
    entities: list[Entity] = []
    for ner_entity in result.entities:
        entity_type = NER_TYPE_TO_ENTITY.get(ner_entity.entity_type)
        if entity_type is None:
            continue
        entities.append(
            Entity(
                entity_type=entity_type,
                text=text[ner_entity.start : ner_entity.end],
                start=ner_entity.start,
                end=ner_entity.end,
                confidence=float(ner_entity.confidence),
                source="ner",
            )
        )
    return entities
