"""
Neural token-classification layer of the LexRedact detector.

predict() tokenizes the text, asks a TokenClassifier for a
[1, seq_len, num_labels] logit array, takes the per-token arg-max label
and its soft-max probability, drops special tokens, merges WordPiece
continuations back into words and decodes the IOB2 labels into entities.

The tensor backend sits behind the TokenClassifier protocol so tests can
run the whole decode path on plain numpy arrays without loading a model.
TransformersTokenClassifier is the production implementation on top of
AutoModelForTokenClassification.

BIO decoding uses strict continuation: an I-X label only extends an open
entity of type X. A mismatched or orphan I-X token is dropped and any
open entity stays open.

HIPAA/GDPR: No token text is logged by this module.
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np
import torch
from transformers import AutoModelForTokenClassification

from lexredact.exceptions import ModelNotLoadedError, ModelOutputError
from lexredact.schemas import (
    NerEntity,
    NerLabel,
    NerModelConfig,
    NerResult,
    TokenPrediction,
)
from lexredact.tokenization import (
    EncodingOutput,
    NerTokenizer,
    align_tokens_with_text,
    merge_subword_predictions,
)

logger = logging.getLogger(__name__)


class TokenClassifier(Protocol):
    """Model Runtime capability: token ids in, label logits out.

    All arrays are int64 with shape [1, seq_len]. The result must have
    shape [1, seq_len, num_labels].
    """

    def __call__(
        self,
        input_ids: np.ndarray,
        attention_mask: np.ndarray,
        token_type_ids: np.ndarray,
    ) -> np.ndarray: ...


def _resolve_device(device: str) -> torch.device:
    if device == "cuda" and torch.cuda.is_available():
        return torch.device("cuda")
    if device == "mps" and torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")


class TransformersTokenClassifier:
    """TokenClassifier backed by a transformers token-classification model."""

    def __init__(self, model: torch.nn.Module, device: str = "cpu") -> None:
        self.device = _resolve_device(device)
        self.model = model.to(self.device)
        self.model.eval()
        # DistilBERT/RoBERTa-style heads have no segment embeddings.
        self._accepts_token_types = (
            "token_type_ids" in inspect.signature(self.model.forward).parameters
        )

    @classmethod
    def from_pretrained(
        cls, model_id: str, device: str = "cpu"
    ) -> TransformersTokenClassifier:
        model = AutoModelForTokenClassification.from_pretrained(model_id)
        return cls(model, device=device)

    @property
    def label_map(self) -> list[str]:
        """IOB2 label names ordered by label id, from the model config."""
        id2label = self.model.config.id2label
        return [id2label[i] for i in range(len(id2label))]

    def __call__(
        self,
        input_ids: np.ndarray,
        attention_mask: np.ndarray,
        token_type_ids: np.ndarray,
    ) -> np.ndarray:
        inputs = {
            "input_ids": torch.as_tensor(input_ids, device=self.device),
            "attention_mask": torch.as_tensor(attention_mask, device=self.device),
        }
        if self._accepts_token_types:
            inputs["token_type_ids"] = torch.as_tensor(
                token_type_ids, device=self.device
            )

        with torch.no_grad():
            outputs = self.model(**inputs)
        return outputs.logits.float().cpu().numpy()


def softmax(logits: np.ndarray) -> np.ndarray:
    """Numerically stable soft-max over the last axis."""
    shifted = logits - logits.max(axis=-1, keepdims=True)
    exp = np.exp(shifted)
    return exp / exp.sum(axis=-1, keepdims=True)


def extract_entities(predictions: list[TokenPrediction]) -> list[NerEntity]:
    """Decode word-level IOB2 predictions into entities (strict continuation).

    O closes the open entity. B-X closes it and opens a new X entity.
    I-X extends the open entity only if it is also of type X, appending
    " " + token, moving the end offset and re-averaging confidence over
    all constituent tokens. Anything else is ignored.
    """
    entities: list[NerEntity] = []
    current: NerEntity | None = None

    for pred in predictions:
        if pred.label is NerLabel.O:
            if current is not None:
                entities.append(current)
                current = None
        elif pred.label.is_begin:
            if current is not None:
                entities.append(current)
            current = NerEntity(
                text=pred.token,
                entity_type=pred.label.entity_type,
                confidence=pred.confidence,
                start=pred.start,
                end=pred.end,
                tokens=[pred],
            )
        elif pred.label.is_inside:
            if current is not None and current.entity_type == pred.label.entity_type:
                current.text += " " + pred.token
                current.end = pred.end
                current.tokens.append(pred)
                current.confidence = sum(t.confidence for t in current.tokens) / len(
                    current.tokens
                )

    if current is not None:
        entities.append(current)
    return entities


@dataclass
class NerPipeline:
    """Token-classification NER over a swappable model runtime.

    Attributes:
        config: Model id, max sequence length and label map.
        tokenizer: Fast tokenizer wrapper; loaded from config.model_id by
            load() if not injected.
        classifier: Model runtime; loaded likewise if not injected.
        device: Torch device string (cpu/cuda/mps) used by load().
    """

    config: NerModelConfig = field(default_factory=NerModelConfig)
    tokenizer: NerTokenizer | None = None
    classifier: TokenClassifier | None = None
    device: str = "cpu"

    @classmethod
    def from_pretrained(
        cls, model_id: str, device: str = "cpu", max_sequence_length: int = 512
    ) -> NerPipeline:
        pipeline = cls(
            config=NerModelConfig(
                model_id=model_id, max_sequence_length=max_sequence_length
            ),
            device=device,
        )
        pipeline.load()
        return pipeline

    def load(self) -> None:
        """Load any missing tokenizer/classifier from config.model_id."""
        if self.tokenizer is None:
            self.tokenizer = NerTokenizer.from_pretrained(
                self.config.model_id, max_length=self.config.max_sequence_length
            )
        if self.classifier is None:
            classifier = TransformersTokenClassifier.from_pretrained(
                self.config.model_id, device=self.device
            )
            self.config.label_map = classifier.label_map
            self.classifier = classifier
        logger.info(
            "NER model %s ready (%d labels)",
            self.config.model_id,
            self.config.num_labels,
        )

    def unload(self) -> None:
        self.tokenizer = None
        self.classifier = None

    def is_ready(self) -> bool:
        return self.tokenizer is not None and self.classifier is not None

    def _ensure_loaded(self) -> None:
        if not self.is_ready():
            raise ModelNotLoadedError(
                "NerPipeline not loaded. Call .load() before inference."
            )

    def predict(self, text: str) -> NerResult:
        """Run NER over text.

        Raises:
            ModelNotLoadedError: If the tokenizer or classifier is missing.
            ModelOutputError: If the logits do not match the encoding.
        """
        self._ensure_loaded()
        started = time.perf_counter()

        encoding = self.tokenizer.encode(text)
        logits = self._run_classifier(encoding)

        probabilities = softmax(logits[0])
        label_ids = probabilities.argmax(axis=-1)
        confidences = probabilities[np.arange(len(label_ids)), label_ids]

        alignments = align_tokens_with_text(
            encoding.tokens, encoding.offsets, self.tokenizer.continuation_prefix
        )
        words = merge_subword_predictions(
            alignments,
            [(int(label_ids[a.index]), float(confidences[a.index])) for a in alignments],
        )

        token_predictions: list[TokenPrediction] = []
        for word in words:
            label = self.config.label_for(word.label_id)
            if label is None:
                logger.debug("Skipping word with unknown label id %d", word.label_id)
                continue
            token_predictions.append(
                TokenPrediction(
                    token=word.text,
                    label=label,
                    confidence=word.confidence,
                    start=word.start,
                    end=word.end,
                )
            )

        entities = extract_entities(token_predictions)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(
            "NER found %d entities in %d tokens (%.1f ms)",
            len(entities),
            len(encoding),
            elapsed_ms,
        )

        return NerResult(
            text=text,
            entities=entities,
            token_predictions=token_predictions,
            inference_time_ms=elapsed_ms,
        )

    def _run_classifier(self, encoding: EncodingOutput) -> np.ndarray:
        def as_batch(values: list[int]) -> np.ndarray:
            return np.asarray([values], dtype=np.int64)

        logits = np.asarray(
            self.classifier(
                as_batch(encoding.input_ids),
                as_batch(encoding.attention_mask),
                as_batch(encoding.token_type_ids),
            )
        )

        expected = (1, len(encoding), self.config.num_labels)
        if logits.ndim != 3 or logits.shape != expected:
            raise ModelOutputError(
                f"Expected logits of shape {expected}, got {logits.shape}"
            )
        return logits
