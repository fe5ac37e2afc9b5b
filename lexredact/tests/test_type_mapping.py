"""Tests for remote type mapping and context confidence adjustment."""

import pytest

from lexredact.presidio_client import RemoteEntity
from lexredact.schemas import Entity, EntityType
from lexredact.type_mapping import ConfidenceAdjuster, EntityTypeMapper


@pytest.fixture
def mapper() -> EntityTypeMapper:
    return EntityTypeMapper()


class TestEntityTypeMapper:
    @pytest.mark.parametrize(
        ("remote_type", "expected"),
        [
            ("PERSON", EntityType.PERSON),
            ("GPE", EntityType.LOCATION),
            ("ORG", EntityType.ORGANIZATION),
            ("EMAIL_ADDRESS", EntityType.EMAIL),
            ("PHONE_NUMBER", EntityType.PHONE),
            ("DATE_TIME", EntityType.DATE),
            ("MONEY", EntityType.MONEY),
            ("US_SSN", EntityType.IDENTIFICATION),
            ("IBAN_CODE", EntityType.IDENTIFICATION),
            ("IT_FISCAL_CODE", EntityType.IDENTIFICATION),
            ("IP_ADDRESS", EntityType.TECHNICAL_IDENTIFIER),
            ("URL", EntityType.TECHNICAL_IDENTIFIER),
        ],
    )
    def test_to_internal(
        self, mapper: EntityTypeMapper, remote_type: str, expected: EntityType
    ) -> None:
        assert mapper.to_internal(remote_type) is expected
        assert mapper.is_recognized(remote_type)

    def test_unmapped_type(self, mapper: EntityTypeMapper) -> None:
        assert mapper.to_internal("NOT_A_TYPE") is None
        assert not mapper.is_recognized("NOT_A_TYPE")

    def test_to_remote(self, mapper: EntityTypeMapper) -> None:
        assert mapper.to_remote(EntityType.EMAIL) == "EMAIL_ADDRESS"
        assert mapper.to_remote(EntityType.IDENTIFICATION) == "US_SSN"
        assert mapper.to_remote(EntityType.LAW) == "LAW_REFERENCE"

    def test_remote_types_for(self, mapper: EntityTypeMapper) -> None:
        assert mapper.remote_types_for(EntityType.LOCATION) == ["GPE", "LOC", "LOCATION"]
        assert "CREDIT_CARD" in mapper.remote_types_for(EntityType.IDENTIFICATION)

    def test_table_covers_many_remote_types(self, mapper: EntityTypeMapper) -> None:
        assert len(mapper.all_remote_types()) >= 50

    def test_add_mapping(self, mapper: EntityTypeMapper) -> None:
        mapper.add_mapping("UK_PASSPORT", EntityType.IDENTIFICATION)
        assert mapper.to_internal("UK_PASSPORT") is EntityType.IDENTIFICATION
        # The existing preferred reverse name is kept.
        assert mapper.to_remote(EntityType.IDENTIFICATION) == "US_SSN"

    def test_convert_entities_slices_source_text(self, mapper: EntityTypeMapper) -> None:
        text = "Email jane@example.com now"
        entities = mapper.convert_entities(
            [RemoteEntity("EMAIL_ADDRESS", 6, 22, 0.95)], text
        )
        assert len(entities) == 1
        assert entities[0].entity_type is EntityType.EMAIL
        assert entities[0].text == "jane@example.com"
        assert entities[0].confidence == 0.95
        assert entities[0].source == "presidio"

    def test_convert_entities_drops_only_bad_entries(
        self, mapper: EntityTypeMapper
    ) -> None:
        """Unmapped types and out-of-range offsets drop that entity only."""
        text = "Call John"
        remote = [
            RemoteEntity("PERSON", 5, 9, 0.8),
            RemoteEntity("PERSON", 5, 40, 0.8),
            RemoteEntity("PERSON", 7, 3, 0.8),
            RemoteEntity("NOT_A_TYPE", 0, 4, 0.9),
        ]
        entities = mapper.convert_entities(remote, text)
        assert [(e.text, e.start, e.end) for e in entities] == [("John", 5, 9)]

    def test_convert_entity_drops_empty_span(self, mapper: EntityTypeMapper) -> None:
        assert mapper.convert_entity(RemoteEntity("PERSON", 5, 5, 0.9), "Call John") is None
        assert mapper.convert_entities([RemoteEntity("PERSON", 9, 9, 0.9)], "Call John") == []


def _person(text: str, start: int, confidence: float) -> Entity:
    return Entity(EntityType.PERSON, text, start, start + len(text), confidence)


class TestConfidenceAdjuster:
    def test_keyword_boost(self) -> None:
        adjuster = ConfidenceAdjuster()
        entity = _person("John Doe", 10, 0.6)
        boosted = adjuster.adjust_confidence(entity, "plaintiff John Doe and counsel")
        assert boosted == pytest.approx(0.7)

    def test_boost_is_capped(self) -> None:
        adjuster = ConfidenceAdjuster()
        entity = _person("John Doe", 0, 0.98)
        assert adjuster.adjust_confidence(entity, "attorney witness client") == 1.0

    def test_no_keywords_for_type(self) -> None:
        adjuster = ConfidenceAdjuster()
        entity = Entity(EntityType.EMAIL, "a@b.io", 0, 6, 0.6)
        assert adjuster.adjust_confidence(entity, "attorney a@b.io") == 0.6

    def test_min_confidence_is_clamped(self) -> None:
        assert ConfidenceAdjuster(min_confidence=1.7).min_confidence == 1.0
        adjuster = ConfidenceAdjuster()
        adjuster.set_min_confidence(-0.2)
        assert adjuster.min_confidence == 0.0

    def test_filter_by_confidence(self) -> None:
        adjuster = ConfidenceAdjuster(min_confidence=0.5)
        kept = adjuster.filter_by_confidence(
            [_person("A B", 0, 0.49), _person("C D", 5, 0.5)]
        )
        assert [e.text for e in kept] == ["C D"]

    def test_adjust_entities_uses_context_window(self) -> None:
        text = "The defendant " + "x" * 60 + " John Doe"
        far = _person("John Doe", text.index("John"), 0.45)
        near_text = "The defendant John Doe"
        near = _person("John Doe", near_text.index("John"), 0.45)

        adjuster = ConfidenceAdjuster(context_window=50)
        assert adjuster.adjust_entities([far], text) == []

        adjusted = adjuster.adjust_entities([near], near_text)
        assert adjusted[0].confidence == pytest.approx(0.5)
        assert near.confidence == 0.45
