"""
Entity type mapping between the remote detection service and LexRedact.

The remote analyzer (Presidio) reports ~50 fine-grained entity types and
returns only offsets, a type string and a score. EntityTypeMapper folds
those types into the 11 internal EntityType values and recovers the
surface text by slicing the source. ConfidenceAdjuster optionally raises
scores when type-specific context keywords surround an entity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from lexredact.presidio_client import RemoteEntity
from lexredact.schemas import Entity, EntityType

logger = logging.getLogger(__name__)

# Remote national-ID, licence and financial identifiers, all folded into
# IDENTIFICATION.
IDENTIFICATION_TYPES: tuple[str, ...] = (
    "US_SSN",
    "US_ITIN",
    "US_PASSPORT",
    "US_DRIVER_LICENSE",
    "US_BANK_NUMBER",
    "UK_NHS",
    "UK_NINO",
    "AU_ABN",
    "AU_ACN",
    "AU_TFN",
    "AU_MEDICARE",
    "IN_AADHAAR",
    "IN_PAN",
    "IN_VOTER",
    "IN_PASSPORT",
    "IN_VEHICLE_REGISTRATION",
    "SG_NRIC_FIN",
    "SG_UEN",
    "IT_FISCAL_CODE",
    "IT_DRIVER_LICENSE",
    "IT_VAT_CODE",
    "IT_PASSPORT",
    "IT_IDENTITY_CARD",
    "ES_NIF",
    "ES_NIE",
    "PL_PESEL",
    "PL_NIP",
    "PL_REGON",
    "FI_PERSONAL_IDENTITY_CODE",
    "KR_RRN",
    "TH_TNIN",
    "MEDICAL_LICENSE",
    "NRP",
    "CREDIT_CARD",
    "IBAN_CODE",
    "CRYPTO",
)

DEFAULT_REMOTE_TO_INTERNAL: dict[str, EntityType] = {
    "PERSON": EntityType.PERSON,
    "PER": EntityType.PERSON,
    "LOCATION": EntityType.LOCATION,
    "GPE": EntityType.LOCATION,
    "LOC": EntityType.LOCATION,
    "ORGANIZATION": EntityType.ORGANIZATION,
    "ORG": EntityType.ORGANIZATION,
    "EMAIL_ADDRESS": EntityType.EMAIL,
    "EMAIL": EntityType.EMAIL,
    "PHONE_NUMBER": EntityType.PHONE,
    "PHONE": EntityType.PHONE,
    "DATE_TIME": EntityType.DATE,
    "DATE": EntityType.DATE,
    "TIME": EntityType.DATE,
    "DATE_OF_BIRTH": EntityType.DATE,
    "MONEY": EntityType.MONEY,
    "IP_ADDRESS": EntityType.TECHNICAL_IDENTIFIER,
    "URL": EntityType.TECHNICAL_IDENTIFIER,
    "MAC_ADDRESS": EntityType.TECHNICAL_IDENTIFIER,
    **{remote_type: EntityType.IDENTIFICATION for remote_type in IDENTIFICATION_TYPES},
}

# Preferred remote name for each internal type, used when asking the
# service for a subset of types. CASE and LAW have no remote equivalent;
# the service ignores unknown names.
DEFAULT_INTERNAL_TO_REMOTE: dict[EntityType, str] = {
    EntityType.PERSON: "PERSON",
    EntityType.LOCATION: "LOCATION",
    EntityType.ORGANIZATION: "ORGANIZATION",
    EntityType.EMAIL: "EMAIL_ADDRESS",
    EntityType.PHONE: "PHONE_NUMBER",
    EntityType.DATE: "DATE_TIME",
    EntityType.MONEY: "MONEY",
    EntityType.IDENTIFICATION: "US_SSN",
    EntityType.TECHNICAL_IDENTIFIER: "IP_ADDRESS",
    EntityType.CASE: "CASE_NUMBER",
    EntityType.LAW: "LAW_REFERENCE",
}


class EntityTypeMapper:
    """Bidirectional mapping between remote and internal entity types."""

    def __init__(self) -> None:
        self._remote_to_internal = dict(DEFAULT_REMOTE_TO_INTERNAL)
        self._internal_to_remote = dict(DEFAULT_INTERNAL_TO_REMOTE)

    def to_internal(self, remote_type: str) -> EntityType | None:
        return self._remote_to_internal.get(remote_type)

    def to_remote(self, internal_type: EntityType) -> str | None:
        return self._internal_to_remote.get(internal_type)

    def is_recognized(self, remote_type: str) -> bool:
        return remote_type in self._remote_to_internal

    def remote_types_for(self, internal_type: EntityType) -> list[str]:
        """All remote type names that fold into internal_type."""
        return sorted(
            remote for remote, internal in self._remote_to_internal.items()
            if internal is internal_type
        )

    def all_remote_types(self) -> list[str]:
        return sorted(self._remote_to_internal)

    def add_mapping(self, remote_type: str, internal_type: EntityType) -> None:
        """Register a custom remote type. The reverse entry is only set once."""
        self._remote_to_internal[remote_type] = internal_type
        self._internal_to_remote.setdefault(internal_type, remote_type)

    def convert_entity(self, remote: RemoteEntity, source_text: str) -> Entity | None:
        """Convert one remote result, or None if unmapped, empty or out of bounds."""
        entity_type = self.to_internal(remote.entity_type)
        if entity_type is None:
            return None
        if not 0 <= remote.start < remote.end <= len(source_text):
            logger.debug(
                "Dropping remote %s entity with empty or out-of-range span (%d:%d)",
                remote.entity_type,
                remote.start,
                remote.end,
            )
            return None

        return Entity(
            entity_type=entity_type,
            text=source_text[remote.start : remote.end],
            start=remote.start,
            end=remote.end,
            confidence=float(remote.score),
            source="presidio",
        )

    def convert_entities(
        self, remote_entities: list[RemoteEntity], source_text: str
    ) -> list[Entity]:
        converted: list[Entity] = []
        for remote in remote_entities:
            entity = self.convert_entity(remote, source_text)
            if entity is not None:
                converted.append(entity)

        dropped = len(remote_entities) - len(converted)
        if dropped:
            logger.debug("Dropped %d unmapped or invalid remote entities", dropped)
        return converted


def _default_context_keywords() -> dict[EntityType, list[str]]:
    return {
        EntityType.PERSON: [
            "mr.",
            "mrs.",
            "ms.",
            "dr.",
            "prof.",
            "attorney",
            "counsel",
            "plaintiff",
            "defendant",
            "witness",
            "client",
        ],
        EntityType.ORGANIZATION: [
            "inc.",
            "llc",
            "ltd.",
            "corp.",
            "company",
            "firm",
            "court",
            "tribunal",
        ],
        EntityType.LAW: [
            "article",
            "section",
            "§",
            "gdpr",
            "regulation",
            "directive",
            "statute",
        ],
    }


@dataclass
class ConfidenceAdjuster:
    """Context-keyword confidence boosting and threshold filtering.

    Attributes:
        keyword_boost: Added once per context keyword found near the entity.
        min_confidence: Entities below this are removed by
            filter_by_confidence(). Clamped to [0.0, 1.0].
        context_window: Characters taken on each side of an entity by
            adjust_entities().
        context_keywords: Lowercase keywords per entity type.
    """

    keyword_boost: float = 0.05
    min_confidence: float = 0.5
    context_window: int = 50
    context_keywords: dict[EntityType, list[str]] = field(
        default_factory=_default_context_keywords
    )

    def __post_init__(self) -> None:
        self.set_min_confidence(self.min_confidence)

    def set_min_confidence(self, value: float) -> None:
        self.min_confidence = max(0.0, min(1.0, value))

    def adjust_confidence(self, entity: Entity, surrounding_text: str) -> float:
        confidence = entity.confidence
        lowered = surrounding_text.lower()
        for keyword in self.context_keywords.get(entity.entity_type, []):
            if keyword in lowered:
                confidence += self.keyword_boost
        return min(confidence, 1.0)

    def filter_by_confidence(self, entities: list[Entity]) -> list[Entity]:
        return [e for e in entities if e.confidence >= self.min_confidence]

    def adjust_entities(self, entities: list[Entity], text: str) -> list[Entity]:
        """Boost each entity from its context window, then apply the threshold."""
        adjusted: list[Entity] = []
        for entity in entities:
            lo = max(0, entity.start - self.context_window)
            hi = min(len(text), entity.end + self.context_window)
            confidence = self.adjust_confidence(entity, text[lo:hi])
            adjusted.append(replace(entity, confidence=confidence))
        return self.filter_by_confidence(adjusted)
