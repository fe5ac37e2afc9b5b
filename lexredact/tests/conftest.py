"""
Shared fixtures: an in-memory WordPiece tokenizer and scripted classifiers.

Nothing here downloads a model. The tokenizer is built with the
`tokenizers` library from a tiny vocabulary and wrapped in a
PreTrainedTokenizerFast so NerTokenizer sees the same interface as a
real checkpoint. Classifiers return numpy logits chosen per token id.
"""

import numpy as np
import pytest
from tokenizers import Tokenizer, models, pre_tokenizers, processors
from transformers import PreTrainedTokenizerFast

from lexredact.hybrid_detector import HybridDetector
from lexredact.ner_pipeline import NerPipeline
from lexredact.schemas import DEFAULT_LABEL_MAP, NerModelConfig
from lexredact.tokenization import NerTokenizer

VOCAB_TOKENS: list[str] = [
    "[PAD]",
    "[CLS]",
    "[SEP]",
    "[UNK]",
    "John",
    "Doe",
    "Jack",
    "##son",
    "New",
    "York",
    "City",
    "Acme",
    "Paris",
    "lives",
    "in",
    "met",
    "works",
    "at",
    "called",
    "the",
    "office",
    "Contact",
    "Jane",
    "Smith",
    "Berlin",
    ".",
    ",",
    "@",
]

# Token -> IOB2 label used by the scripted classifier; others are O.
DEFAULT_TOKEN_LABELS: dict[str, str] = {
    "John": "B-PER",
    "Doe": "I-PER",
    "Jack": "B-PER",
    "##son": "I-PER",
    "Jane": "B-PER",
    "Smith": "I-PER",
    "New": "B-LOC",
    "York": "I-LOC",
    "City": "I-LOC",
    "Paris": "B-LOC",
    "Berlin": "B-LOC",
    "Acme": "B-ORG",
}


def build_wordpiece_tokenizer() -> PreTrainedTokenizerFast:
    vocab = {token: i for i, token in enumerate(VOCAB_TOKENS)}
    backend = Tokenizer(models.WordPiece(vocab, unk_token="[UNK]"))
    backend.pre_tokenizer = pre_tokenizers.BertPreTokenizer()
    backend.post_processor = processors.TemplateProcessing(
        single="[CLS] $A [SEP]",
        special_tokens=[("[CLS]", vocab["[CLS]"]), ("[SEP]", vocab["[SEP]"])],
    )
    return PreTrainedTokenizerFast(
        tokenizer_object=backend,
        unk_token="[UNK]",
        cls_token="[CLS]",
        sep_token="[SEP]",
        pad_token="[PAD]",
    )


class ScriptedClassifier:
    """TokenClassifier that emits a fixed label per input token id.

    Logits are `strength` for the chosen label and 0 elsewhere, so every
    token gets the same soft-max confidence.
    """

    def __init__(
        self,
        hf_tokenizer: PreTrainedTokenizerFast,
        token_labels: dict[str, str] | None = None,
        label_map: list[str] | None = None,
        strength: float = 8.0,
    ) -> None:
        self.label_map = label_map or list(DEFAULT_LABEL_MAP)
        self.strength = strength
        self.calls = 0
        labels = DEFAULT_TOKEN_LABELS if token_labels is None else token_labels
        self._label_by_id = {
            hf_tokenizer.convert_tokens_to_ids(token): self.label_map.index(label)
            for token, label in labels.items()
        }

    def confidence(self) -> float:
        exp = np.exp(self.strength)
        return float(exp / (exp + len(self.label_map) - 1))

    def __call__(self, input_ids, attention_mask, token_type_ids) -> np.ndarray:
        self.calls += 1
        assert input_ids.shape == attention_mask.shape == token_type_ids.shape
        ids = input_ids[0]
        logits = np.zeros((1, len(ids), len(self.label_map)), dtype=np.float32)
        for position, token_id in enumerate(ids):
            logits[0, position, self._label_by_id.get(int(token_id), 0)] = self.strength
        return logits


class WrongShapeClassifier:
    """Returns logits with one label too few."""

    def __call__(self, input_ids, attention_mask, token_type_ids) -> np.ndarray:
        return np.zeros((1, input_ids.shape[1], len(DEFAULT_LABEL_MAP) - 1))


@pytest.fixture(scope="session")
def hf_tokenizer() -> PreTrainedTokenizerFast:
    return build_wordpiece_tokenizer()


@pytest.fixture
def ner_tokenizer(hf_tokenizer: PreTrainedTokenizerFast) -> NerTokenizer:
    return NerTokenizer(hf_tokenizer, max_length=64)


@pytest.fixture
def classifier(hf_tokenizer: PreTrainedTokenizerFast) -> ScriptedClassifier:
    return ScriptedClassifier(hf_tokenizer)


@pytest.fixture
def ner_pipeline(
    ner_tokenizer: NerTokenizer, classifier: ScriptedClassifier
) -> NerPipeline:
    """A ready NerPipeline backed by the scripted classifier."""
    return NerPipeline(
        config=NerModelConfig(model_id="test/wordpiece", max_sequence_length=64),
        tokenizer=ner_tokenizer,
        classifier=classifier,
    )


@pytest.fixture
def hybrid_detector(ner_pipeline: NerPipeline) -> HybridDetector:
    return HybridDetector(ner_pipeline=ner_pipeline)
