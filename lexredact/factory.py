import logging

from lexredact.config import Settings
from lexredact.hybrid_detector import HybridDetector
from lexredact.ner_pipeline import NerPipeline
from lexredact.pattern_detector import PatternDetector
from lexredact.presidio_client import PresidioClient

logger = logging.getLogger(__name__)


class DetectorFactory:
    """Builds a HybridDetector wired from settings."""

    @classmethod
    def create(cls, settings: Settings) -> HybridDetector:
        return HybridDetector(
            pattern_detector=PatternDetector(),
            ner_pipeline=cls.create_ner_pipeline(settings),
            presidio_client=cls.create_presidio_client(settings),
            mode=settings.detection_mode,
            language=settings.default_language,
            fusion=settings.fusion_strategy,
        )

    @classmethod
    def create_ner_pipeline(cls, settings: Settings) -> NerPipeline | None:
        """Load the NER model, or return None so the layer reports unavailable."""
        if not settings.ner_enabled:
            return None
        try:
            return NerPipeline.from_pretrained(
                settings.ner_model_id,
                device=settings.ner_device,
                max_sequence_length=settings.ner_max_length,
            )
        except (OSError, ValueError) as exc:
            logger.error("Failed to load NER model %s: %s", settings.ner_model_id, exc)
            return None

    @classmethod
    def create_presidio_client(cls, settings: Settings) -> PresidioClient | None:
        if not settings.presidio_enabled:
            return None
        return PresidioClient(
            base_url=settings.presidio_url,
            connect_timeout=settings.presidio_connect_timeout_seconds,
            timeout=settings.presidio_timeout_seconds,
            score_threshold=settings.presidio_score_threshold,
        )
