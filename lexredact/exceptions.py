"""
Exception hierarchy for the LexRedact detection and redaction pipeline.

Unavailability of an optional layer (NER model not loaded, remote service
disabled or unreachable) is not an error at the HybridDetector boundary:
it degrades to the next-lower layer. These exceptions cover the conditions
that must reach the caller.
"""


class LexRedactError(Exception):
    """Base class for all LexRedact errors."""


class ModelNotLoadedError(LexRedactError, RuntimeError):
    """Raised when NER inference is requested before model/tokenizer load."""


class ModelOutputError(LexRedactError):
    """Raised when the Model Runtime returns logits of an unexpected shape.

    Indicates a model/tokenizer mismatch that pattern-only fallback cannot
    safely compensate for, so it is always surfaced to the caller.
    """


class RemoteServiceError(LexRedactError):
    """Raised by the remote detection client on transport or protocol failure."""
