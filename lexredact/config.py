from pydantic_settings import BaseSettings, SettingsConfigDict

from lexredact.hybrid_detector import DetectionMode, FusionStrategy


class Settings(BaseSettings):
    """Detector configuration loaded from LEXREDACT_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LEXREDACT_", env_file=".env", extra="ignore"
    )

    log_level: str = "INFO"

    detection_mode: DetectionMode = DetectionMode.HYBRID
    default_language: str = "en"
    fusion_strategy: FusionStrategy = FusionStrategy.OPTIMAL

    ner_enabled: bool = True
    ner_model_id: str = "dslim/bert-base-NER"
    ner_device: str = "cpu"
    ner_max_length: int = 512

    presidio_enabled: bool = False
    presidio_url: str = "http://localhost:5002"
    presidio_connect_timeout_seconds: float = 5.0
    presidio_timeout_seconds: float = 30.0
    presidio_score_threshold: float = 0.5
