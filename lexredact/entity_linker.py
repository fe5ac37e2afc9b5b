"""
Heuristic linking of surface-form variants of the same entity.

"Mr. John Doe", "John Doe" and "john doe" normalize to the same string.
might_be_same_person() additionally treats substring matches and
"same last word + a shared initial" as the same person. The linker keeps
a map from each canonical (normalized) form to the variants linked to it.

The Anonymizer only consults this when
AnonymizationSettings.link_person_variants is enabled; by default it keys
placeholders on verbatim text.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

TITLES: tuple[str, ...] = ("mr", "mrs", "ms", "dr", "prof")

_TITLE_PATTERN = re.compile(
    r"\b(?:" + "|".join(TITLES) + r")\b\.?\s+", re.IGNORECASE
)


class EntityLinker:
    def __init__(self) -> None:
        self._entity_map: dict[str, list[str]] = {}

    def __len__(self) -> int:
        return len(self._entity_map)

    @staticmethod
    def normalize(text: str) -> str:
        """Strip honorific titles, lower-case and collapse whitespace."""
        without_titles = _TITLE_PATTERN.sub("", text)
        return " ".join(without_titles.lower().split())

    @staticmethod
    def _last_name(normalized: str) -> str | None:
        words = normalized.split()
        return words[-1] if len(words) >= 2 else None

    @staticmethod
    def _share_initials(a: str, b: str) -> bool:
        initials_a = {word[0] for word in a.split()}
        initials_b = {word[0] for word in b.split()}
        return bool(initials_a & initials_b)

    def might_be_same_person(self, a: str, b: str) -> bool:
        """True if a and b plausibly name the same person.

        Matches on equal normalized forms, on one containing the other, or
        on a shared last word plus at least one shared word initial.
        """
        norm_a = self.normalize(a)
        norm_b = self.normalize(b)
        if not norm_a or not norm_b:
            return False
        if norm_a == norm_b:
            return True
        if norm_a in norm_b or norm_b in norm_a:
            return True

        last_a = self._last_name(norm_a)
        last_b = self._last_name(norm_b)
        if last_a is not None and last_a == last_b:
            return self._share_initials(norm_a, norm_b)
        return False

    def link_variation(self, canonical: str, variation: str) -> None:
        canonical_norm = self.normalize(canonical)
        variants = self._entity_map.setdefault(canonical_norm, [canonical_norm])
        variation_norm = self.normalize(variation)
        if variation_norm not in variants:
            variants.append(variation_norm)

    def get_canonical(self, text: str) -> str:
        """Canonical form text is linked to, or its own normalized form."""
        normalized = self.normalize(text)
        if normalized in self._entity_map:
            return normalized
        for canonical, variants in self._entity_map.items():
            if normalized in variants:
                return canonical
        return normalized

    def variations(self, canonical: str) -> list[str]:
        return list(self._entity_map.get(self.normalize(canonical), []))

    def auto_link_entities(self, entities: list[str]) -> None:
        """Pairwise (O(n^2)) linking; earlier entries become canonical."""
        for i, canonical in enumerate(entities):
            for variation in entities[i + 1 :]:
                if self.might_be_same_person(canonical, variation):
                    self.link_variation(canonical, variation)

    def resolve(self, text: str) -> str:
        """Canonical form for text, linking it to a known entity if one matches.

        Unmatched text is registered as a new canonical form.
        """
        normalized = self.normalize(text)
        canonical = self.get_canonical(normalized)
        if canonical in self._entity_map:
            return canonical

        for known in self._entity_map:
            if self.might_be_same_person(known, normalized):
                self.link_variation(known, normalized)
                logger.debug("Linked variant to existing entity (%d known)", len(self))
                return known

        self._entity_map[normalized] = [normalized]
        return normalized

    def clear(self) -> None:
        self._entity_map.clear()
