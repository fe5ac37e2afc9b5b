"""
Deterministic regex-based entity detector (pattern layer).

Handles detection of:
  - EMAIL, PHONE (international, plain, parenthesized), IDENTIFICATION
    (US SSN, European-style codes), MONEY ($, EUR, GBP and ISO-code
    suffixed amounts), DATE (numeric, ISO and month-name formats), CASE
    (docket/file numbers), LAW (article, section, statute references),
    TECHNICAL_IDENTIFIER (IPv4, URL), PERSON (honorific + name) and
    ORGANIZATION (company suffixes, court names).
  - A lower-precision PERSON heuristic (2-4 capitalized words) exposed
    separately through detect_person_names().

Legal citations resemble identifiers, so a whitelist of legal-reference
patterns suppresses any non-LAW match whose text also matches it.

No raw entity text is logged. Only types, counts and offsets.
"""

import logging
import re
from dataclasses import dataclass, field

from lexredact.schemas import Entity, EntityType

logger = logging.getLogger(__name__)

PATTERN_CONFIDENCE = 0.85
NAME_HEURISTIC_CONFIDENCE = 0.75

# Ordered (entity_type, pattern) table. Order only matters for ties in
# remove_overlaps: at the same start the longer span is kept anyway.
PATTERN_TABLE: list[tuple[EntityType, str]] = [
    # Email
    (
        EntityType.EMAIL,
        r"(?<!\w)[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}(?![A-Za-z])",
    ),
    # Phone: international, plain 10-digit, parenthesized area code
    (
        EntityType.PHONE,
        r"(?<![\w+])\+\d{1,3}[\s-]?(?:\(\d{1,4}\)[\s-]?)?\d{2,4}(?:[\s-]?\d{2,4}){2,4}(?!\w)",
    ),
    (EntityType.PHONE, r"\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b"),
    (EntityType.PHONE, r"(?<!\w)\(\d{3}\)\s?\d{3}[-.\s]?\d{4}(?!\d)"),
    # US SSN and European-style identification numbers
    (EntityType.IDENTIFICATION, r"\b\d{3}-\d{2}-\d{4}\b"),
    (EntityType.IDENTIFICATION, r"\b[A-Z]{2}\d{6,12}\b"),
    # Money
    (EntityType.MONEY, r"\$\s?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{2})?"),
    (EntityType.MONEY, r"€\s?(?:\d{1,3}(?:[.,]\d{3})+|\d+)(?:[.,]\d{2})?"),
    (EntityType.MONEY, r"£\s?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{2})?"),
    (
        EntityType.MONEY,
        r"\b(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{2})?\s?(?:USD|EUR|GBP)\b",
    ),
    # Dates
    (EntityType.DATE, r"\b\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}\b"),
    (EntityType.DATE, r"\b\d{4}[-/]\d{1,2}[-/]\d{1,2}\b"),
    (
        EntityType.DATE,
        r"\b(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+\d{1,2},?\s+\d{4}\b",
    ),
    # Case and docket numbers
    (
        EntityType.CASE,
        r"\b(?:Case|Docket|File)\s+(?:No\.?|Number|#)\s*:?\s*\d+(?:[-/]\d+)*\b",
    ),
    (EntityType.CASE, r"\b\d{2}-[A-Z]{2,4}-\d{4,}\b"),
    (EntityType.CASE, r"\b\d{1,2}:\d{2}-[a-z]{2}-\d{3,6}\b"),
    # Legal references (preserved, never anonymized)
    (
        EntityType.LAW,
        r"(?:\b(?:Article|Section|Art\.|Sec\.)|§)\s*\d+[a-z]?(?:\(\d+[a-z]?\))*"
        r"(?:\s+(?:of\s+(?:the\s+)?)?(?:[A-Z]{2,}\b|(?:[A-Z][A-Za-z]*\s+){0,5}"
        r"(?:Act|Code|Regulation|Directive|Convention|Treaty|Constitution)\b))?",
    ),
    (EntityType.LAW, r"\b\d+\s+U\.S\.C\.?\s+§?\s*\d+\b"),
    (EntityType.LAW, r"\bGDPR\b"),
    (EntityType.LAW, r"\b(?:Act|Code|Regulation)\s+\d+\b"),
    (EntityType.LAW, r"\b(?:[A-Z][a-z]+\s+){1,6}Act\s+of\s+\d{4}\b"),
    # Technical identifiers
    (EntityType.TECHNICAL_IDENTIFIER, r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b"),
    (EntityType.TECHNICAL_IDENTIFIER, r"\bhttps?://[^\s<>\"']+[^\s<>\"'.,;:!?)]"),
    # Person names introduced by an honorific
    (
        EntityType.PERSON,
        r"\b(?:Mr\.|Mrs\.|Ms\.|Dr\.|Prof\.)\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b",
    ),
    # Organizations: company suffixes and court names
    (
        EntityType.ORGANIZATION,
        r"\b(?!(?:The|This|That|Such|Said|Each|Any)\b)"
        r"[A-Z][A-Za-z&]*(?:\s+(?:&\s+)?[A-Z][A-Za-z&]*)*\s+"
        r"(?:Inc|LLC|LLP|Ltd|Corp|Corporation|Company|Co|GmbH|PLC)\b\.?",
    ),
    (
        EntityType.ORGANIZATION,
        r"\b(?:Supreme|District|Circuit|Appellate|High)\s+Court\s+(?:of|for)\s+"
        r"(?:the\s+)?[A-Z][A-Za-z]*(?:\s+[A-Z][A-Za-z]*)*",
    ),
    (
        EntityType.ORGANIZATION,
        r"\bCourt\s+of\s+(?:the\s+)?[A-Z][A-Za-z]*(?:\s+[A-Z][A-Za-z]*)*",
    ),
]

# Legal references that must survive anonymization even when another
# pattern (ID, case number, organization) also matches them.
LEGAL_WHITELIST: list[str] = [
    r"\b(?:Article|Section|Paragraph)\s+\d+",
    r"\bGDPR\b",
    r"\b[A-Z]{2,4}\s+(?:Act|Code|Regulation)\b",
    r"\b\d+\s+U\.S\.C\.?\s+§?\s*\d+",
    r"\b(?:First|Second|Third|Fourth|Fifth|Sixth|Seventh|Eighth|Ninth|Tenth|"
    r"Eleventh|Twelfth|Thirteenth|Fourteenth|Fifteenth)\s+Amendment\b",
    r"\b(?:Constitutional|Federal|State)\s+(?:Law|Statute|Regulation)\b",
]

# Leading words that the capitalized-words heuristic picks up at sentence
# starts but that are never part of a name.
NAME_CONTEXT_WORDS: frozenset[str] = frozenset(
    {
        "contact",
        "call",
        "under",
        "dear",
        "from",
        "to",
        "per",
        "attn",
        "attention",
        "regarding",
        "re",
        "cc",
        "by",
        "between",
        "and",
        "the",
        "with",
        "for",
        "plaintiff",
        "defendant",
        "claimant",
        "respondent",
        "appellant",
        "witness",
        "client",
        "counsel",
        "judge",
        "justice",
        "signed",
        "sincerely",
        "thanks",
        "hello",
        "hi",
        "if",
        "when",
        "on",
        "in",
        "at",
        "after",
        "before",
        "whereas",
        "pursuant",
    }
)

NAME_EXCLUSIONS: frozenset[str] = frozenset(
    {
        "united states",
        "united kingdom",
        "european union",
        "supreme court",
        "district court",
        "circuit court",
        "high court",
        "court of",
        "state of",
        "city of",
        "county of",
        "new york",
    }
)

# Any candidate containing one of these tokens is a legal phrase, not a name.
LEGAL_TERM_TOKENS: frozenset[str] = frozenset(
    {
        "article",
        "section",
        "paragraph",
        "court",
        "act",
        "code",
        "regulation",
        "directive",
        "statute",
        "law",
        "amendment",
        "constitution",
        "treaty",
        "convention",
        "chapter",
        "title",
        "clause",
        "schedule",
        "annex",
        "gdpr",
    }
)

_NAME_PATTERN = r"\b[A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+){1,3}\b"


@dataclass
class PatternDetector:
    """Regex detector with a legal-reference whitelist.

    Attributes:
        pattern_confidence: Confidence assigned to every main-pass match.
        name_confidence: Confidence assigned by detect_person_names().
        pattern_table: (entity_type, regex source) pairs compiled at
            construction. Sources that fail to compile are logged and
            skipped.
        whitelist_table: Regex sources of legal references that suppress
            non-LAW matches.
    """

    pattern_confidence: float = PATTERN_CONFIDENCE
    name_confidence: float = NAME_HEURISTIC_CONFIDENCE
    pattern_table: list[tuple[EntityType, str]] = field(
        default_factory=lambda: list(PATTERN_TABLE)
    )
    whitelist_table: list[str] = field(default_factory=lambda: list(LEGAL_WHITELIST))
    _patterns: dict[EntityType, list[re.Pattern[str]]] = field(
        init=False, repr=False, default_factory=dict
    )
    _whitelist: list[re.Pattern[str]] = field(
        init=False, repr=False, default_factory=list
    )
    _name_pattern: re.Pattern[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Compile every pattern once at construction time."""
        for entity_type, source in self.pattern_table:
            self.add_pattern(entity_type, source)
        for source in self.whitelist_table:
            compiled = self._compile(source)
            if compiled is not None:
                self._whitelist.append(compiled)
        self._name_pattern = re.compile(_NAME_PATTERN)

    @staticmethod
    def _compile(source: str) -> re.Pattern[str] | None:
        try:
            return re.compile(source)
        except re.error as exc:
            logger.warning("Skipping invalid pattern %r: %s", source, exc)
            return None

    def add_pattern(self, entity_type: EntityType, source: str) -> bool:
        """Compile and register a pattern. Returns False if it was rejected."""
        compiled = self._compile(source)
        if compiled is None:
            return False
        self._patterns.setdefault(entity_type, []).append(compiled)
        return True

    def patterns_for(self, entity_type: EntityType) -> list[re.Pattern[str]]:
        return list(self._patterns.get(entity_type, []))

    # ------------------------------------------------------------------
    # Main pass
    # ------------------------------------------------------------------

    def detect(self, text: str) -> list[Entity]:
        """Run every pattern and return non-overlapping entities by start.

        Non-LAW matches that also match the legal whitelist are dropped.
        Same-layer overlaps are resolved by remove_overlaps().
        """
        candidates: list[Entity] = []
        suppressed = 0

        for entity_type, regexes in self._patterns.items():
            for regex in regexes:
                for match in regex.finditer(text):
                    if match.start() == match.end():
                        continue
                    matched = match.group(0)
                    if entity_type is not EntityType.LAW and self.is_whitelisted(
                        matched
                    ):
                        suppressed += 1
                        continue
                    candidates.append(
                        Entity(
                            entity_type=entity_type,
                            text=matched,
                            start=match.start(),
                            end=match.end(),
                            confidence=self.pattern_confidence,
                            source="pattern",
                        )
                    )

        if suppressed:
            logger.debug("Whitelist suppressed %d pattern matches", suppressed)

        return self.remove_overlaps(candidates)

    def is_whitelisted(self, text: str) -> bool:
        return any(regex.search(text) for regex in self._whitelist)

    @staticmethod
    def remove_overlaps(entities: list[Entity]) -> list[Entity]:
        """Resolve same-layer overlaps, keeping the longer match.

        Scans in start order tracking the end of the last kept entity. A
        match starting at or after it is kept. An overlapping match replaces
        the last kept one only if it is strictly longer.
        """
        ordered = sorted(entities, key=lambda e: (e.start, -e.length))
        result: list[Entity] = []
        last_end = 0

        for entity in ordered:
            if not result or entity.start >= last_end:
                result.append(entity)
                last_end = entity.end
                continue

            last = result[-1]
            if entity.length <= last.length:
                continue
            result[-1] = entity
            last_end = entity.end

        return result

    # ------------------------------------------------------------------
    # Name heuristic
    # ------------------------------------------------------------------

    def detect_person_names(self, text: str) -> list[Entity]:
        """Detect runs of 2-4 capitalized words as PERSON at lower confidence.

        Leading context words ("Contact", "Under", ...) are stripped from
        each run before the exclusion and legal-term checks. Runs reduced
        below two words are discarded.
        """
        entities: list[Entity] = []

        for match in self._name_pattern.finditer(text):
            start, end = match.start(), match.end()
            words = list(re.finditer(r"\S+", match.group(0)))

            while words and words[0].group(0).lower() in NAME_CONTEXT_WORDS:
                words.pop(0)
            if len(words) < 2:
                continue

            start = match.start() + words[0].start()
            candidate = text[start:end]
            if not self.is_likely_name(candidate):
                continue

            entities.append(
                Entity(
                    entity_type=EntityType.PERSON,
                    text=candidate,
                    start=start,
                    end=end,
                    confidence=self.name_confidence,
                    source="pattern",
                )
            )

        return entities

    @staticmethod
    def is_likely_name(text: str) -> bool:
        normalized = " ".join(text.split()).lower()
        if normalized in NAME_EXCLUSIONS:
            return False
        return not any(word in LEGAL_TERM_TOKENS for word in normalized.split())

    def detect_all(self, text: str) -> list[Entity]:
        """Main pass plus the name heuristic, resolved into one list."""
        entities = self.detect(text) + self.detect_person_names(text)
        return self.remove_overlaps(entities)
