"""
Tokenizer wrapper and token/word alignment for the NER layer.

NerTokenizer turns text into model inputs plus per-token character
offsets. align_tokens_with_text() drops bracket-delimited special tokens
and flags WordPiece continuation tokens, keeping each kept token's
position in the encoded sequence so its prediction stays paired with it.
merge_subword_predictions() folds continuation tokens back into words.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from transformers import AutoTokenizer, PreTrainedTokenizerBase

logger = logging.getLogger(__name__)

CONTINUATION_PREFIX = "##"


@dataclass
class EncodingOutput:
    """Model inputs for a single sequence (batch dimension added later)."""

    input_ids: list[int]
    attention_mask: list[int]
    token_type_ids: list[int]
    tokens: list[str]
    offsets: list[tuple[int, int]]
    truncated: bool = False

    def __len__(self) -> int:
        return len(self.input_ids)


@dataclass
class TokenAlignment:
    """A non-special token with its source span.

    Attributes:
        token: Token text with any continuation prefix removed.
        start: Start character offset in the source text.
        end: End character offset in the source text.
        is_subword: True for continuation tokens ("##son").
        index: Position of the token in the encoded sequence.
    """

    token: str
    start: int
    end: int
    is_subword: bool
    index: int


@dataclass
class MergedWord:
    """A whole word rebuilt from its sub-word tokens."""

    text: str
    label_id: int
    confidence: float
    start: int
    end: int


def is_special_token(token: str) -> bool:
    """Bracket-delimited structural markers: [CLS], [SEP], [PAD], ..."""
    return len(token) > 2 and token.startswith("[") and token.endswith("]")


def align_tokens_with_text(
    tokens: list[str],
    offsets: list[tuple[int, int]],
    continuation_prefix: str = CONTINUATION_PREFIX,
) -> list[TokenAlignment]:
    alignments: list[TokenAlignment] = []
    for index, (token, (start, end)) in enumerate(zip(tokens, offsets)):
        if is_special_token(token):
            continue

        is_subword = token.startswith(continuation_prefix) and len(token) > len(
            continuation_prefix
        )
        clean = token[len(continuation_prefix) :] if is_subword else token
        alignments.append(
            TokenAlignment(
                token=clean,
                start=int(start),
                end=int(end),
                is_subword=is_subword,
                index=index,
            )
        )
    return alignments


def merge_subword_predictions(
    alignments: list[TokenAlignment],
    predictions: list[tuple[int, float]],
) -> list[MergedWord]:
    """Merge continuation tokens into the word they belong to.

    predictions[i] is the (label_id, confidence) pair for alignments[i].
    A word keeps the label of its first token and the mean confidence of
    all its tokens. A continuation token with no open word starts one.
    """
    merged: list[MergedWord] = []
    current: MergedWord | None = None
    confidences: list[float] = []

    def flush() -> None:
        if current is not None:
            current.confidence = sum(confidences) / len(confidences)
            merged.append(current)

    for alignment, (label_id, confidence) in zip(alignments, predictions):
        if alignment.is_subword and current is not None:
            current.text += alignment.token
            current.end = alignment.end
            confidences.append(confidence)
            continue

        flush()
        current = MergedWord(
            text=alignment.token,
            label_id=label_id,
            confidence=confidence,
            start=alignment.start,
            end=alignment.end,
        )
        confidences = [confidence]

    flush()
    return merged


@dataclass
class NerTokenizer:
    """Fast Hugging Face tokenizer configured for single-sequence NER.

    Offsets are character offsets into the text passed to encode(), so
    they index Python strings directly.

    Attributes:
        tokenizer: A fast (Rust-backed) tokenizer; offsets require one.
        max_length: Maximum sequence length including special tokens.
    """

    tokenizer: PreTrainedTokenizerBase
    max_length: int = 512
    continuation_prefix: str = field(default=CONTINUATION_PREFIX)

    def __post_init__(self) -> None:
        if not getattr(self.tokenizer, "is_fast", False):
            raise ValueError("NerTokenizer needs a fast tokenizer for offsets")

    @classmethod
    def from_pretrained(cls, model_id: str, max_length: int = 512) -> NerTokenizer:
        return cls(AutoTokenizer.from_pretrained(model_id), max_length=max_length)

    def encode(self, text: str) -> EncodingOutput:
        encoding = self.tokenizer(
            text,
            return_offsets_mapping=True,
            return_token_type_ids=True,
            truncation=True,
            max_length=self.max_length,
        )

        input_ids = list(encoding["input_ids"])
        offsets = [(int(s), int(e)) for s, e in encoding["offset_mapping"]]
        token_type_ids = list(encoding.get("token_type_ids") or [0] * len(input_ids))

        covered = max((e for _, e in offsets), default=0)
        truncated = covered < len(text.rstrip())
        if truncated:
            logger.warning(
                "Input truncated to %d tokens; characters after offset %d "
                "are not seen by the NER model",
                self.max_length,
                covered,
            )

        return EncodingOutput(
            input_ids=input_ids,
            attention_mask=list(encoding["attention_mask"]),
            token_type_ids=token_type_ids,
            tokens=encoding.tokens(),
            offsets=offsets,
            truncated=truncated,
        )
