"""
Settings management with JSON persistence.

Handles loading, saving, and validating application settings.
Uses platformdirs for cross-platform directory resolution.
"""

import json
from pathlib import Path
from typing import TYPE_CHECKING, List, Literal, Optional, Tuple, Type, TypeVar

from platformdirs import user_config_path, user_data_path
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ...utils.logger import get_logger
from .config import (
    DEFAULT_FORMATTING_TAG,
    DEFAULT_FORMATTING_TIMEOUT_S,
    DEFAULT_SAMPLE_RATE,
    MAX_HISTORY_ENTRIES,
)

if TYPE_CHECKING:
    from ..asr.bindings import EngineCandidate

logger = get_logger(__name__)

APP_NAME = "dictaflow"

FORMATTING_PROVIDER_KINDS = ("litellm", "ollama")

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_config_dir() -> Path:
    return user_config_path(APP_NAME, ensure_exists=True)


def get_data_dir() -> Path:
    return user_data_path(APP_NAME, ensure_exists=True)


def get_recordings_dir() -> Path:
    recordings_dir = get_data_dir() / "recordings"
    recordings_dir.mkdir(parents=True, exist_ok=True)
    return recordings_dir


class EngineSettings(BaseModel):
    model_config = ConfigDict(extra="ignore", validate_assignment=False)

    # Empty means the bundled engines.json
    candidates: List[dict] = Field(default_factory=list)

    def resolve_candidates(self) -> List["EngineCandidate"]:
        from ..asr.bindings import load_engine_candidates, parse_engine_candidates

        if self.candidates:
            return parse_engine_candidates(self.candidates)
        return load_engine_candidates()


class TranscriptionSettings(BaseModel):
    model_config = ConfigDict(extra="ignore", validate_assignment=False)

    language: str = ""
    no_speech_threshold: float = Field(default=0.0, ge=0.0, le=1.0)
    min_duration_s: float = Field(default=1.25, ge=0.0, le=10.0)


class FormattingSettings(BaseModel):
    model_config = ConfigDict(extra="ignore", validate_assignment=False)

    enabled: bool = False
    provider: str = "litellm"
    # Vendor prefix for litellm model names (openai, openrouter, gemini, ...)
    llm_vendor: str = "openai"
    model: str = ""
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    timeout_s: float = Field(default=DEFAULT_FORMATTING_TIMEOUT_S, gt=0, le=300)
    tag: str = DEFAULT_FORMATTING_TAG

    @field_validator("provider")
    @classmethod
    def provider_known(cls, v):
        if v not in FORMATTING_PROVIDER_KINDS:
            raise ValueError(
                f"provider must be one of {', '.join(FORMATTING_PROVIDER_KINDS)}"
            )
        return v

    @field_validator("tag")
    @classmethod
    def tag_is_plain_name(cls, v):
        if not isinstance(v, str) or not v.strip() or any(c in v for c in "<>/ "):
            raise ValueError("tag must be a non-empty name without <, >, / or spaces")
        return v


class TranscriptionRecord(BaseModel):
    model_config = ConfigDict(validate_assignment=False)

    timestamp: str  # ISO format datetime
    session_id: str
    raw_text: str = ""
    formatted_text: Optional[str] = None
    used_fallback: bool = False
    fallback_reason: Optional[str] = None
    status: Literal["completed", "failed"] = "completed"
    failure_reason: Optional[str] = None
    audio_file: Optional[str] = None

    def to_dict(self) -> dict:
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptionRecord":
        return cls.model_validate(data)


def _validate_with_fallbacks(model_cls: Type[ModelT], data: dict) -> ModelT:
    """Validate each field on its own, resetting invalid ones to defaults."""
    defaults = model_cls()
    result_data = {}

    for field_name, field_info in model_cls.model_fields.items():
        if field_name not in data:
            continue
        value = data[field_name]

        annotation = field_info.annotation
        if (
            isinstance(annotation, type)
            and issubclass(annotation, BaseModel)
            and isinstance(value, dict)
        ):
            result_data[field_name] = _validate_with_fallbacks(annotation, value)
            continue

        try:
            model_cls.model_validate({field_name: value})
            result_data[field_name] = value
        except ValidationError:
            default_val = getattr(defaults, field_name)
            logger.warning(
                f"Invalid {field_name} {value!r}, resetting to {default_val!r}"
            )

    return model_cls.model_validate(result_data)


class Settings(BaseModel):
    model_config = ConfigDict(validate_assignment=False)

    sample_rate: int = Field(default=DEFAULT_SAMPLE_RATE, ge=8000, le=192000)
    input_device: Optional[str] = None
    model_path: str = "sherpa-onnx-whisper-base.en"
    use_gpu: bool = True
    keep_audio: bool = False

    engine: EngineSettings = Field(default_factory=EngineSettings)
    transcription: TranscriptionSettings = Field(default_factory=TranscriptionSettings)
    formatting: FormattingSettings = Field(default_factory=FormattingSettings)
    vocabulary_replacements: List[Tuple[str, str]] = Field(default_factory=list)

    @field_validator("model_path")
    @classmethod
    def model_path_not_empty(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("model_path must be a non-empty string")
        return v

    @classmethod
    def load(cls) -> "Settings":
        config_file = get_config_dir() / "settings.json"

        if not config_file.exists():
            return cls()

        try:
            with open(config_file, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(
                f"Could not load settings: {e}. Using defaults.", exc_info=True
            )
            return cls()

        if not isinstance(data, dict):
            logger.warning("Settings file is not a JSON object. Using defaults.")
            return cls()

        return cls._load_with_fallbacks(data)

    @classmethod
    def _load_with_fallbacks(cls, data: dict) -> "Settings":
        """Load settings with field-level fallback to defaults on validation errors."""
        return _validate_with_fallbacks(cls, data)

    def save(self) -> None:
        config_file = get_config_dir() / "settings.json"

        data = self.model_dump()

        with open(config_file, "w") as f:
            json.dump(data, f, indent=2)

    def reset_to_defaults(self) -> None:
        default = Settings()
        for key in type(self).model_fields:
            setattr(self, key, getattr(default, key))


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.load()
    return _settings_instance


def get_history_file() -> Path:
    return get_config_dir() / "history.json"


def load_history() -> List[TranscriptionRecord]:
    history_file = get_history_file()

    if not history_file.exists():
        return []

    try:
        with open(history_file, "r") as f:
            data = json.load(f)

        return [TranscriptionRecord.from_dict(item) for item in data]
    except (json.JSONDecodeError, TypeError, ValidationError) as e:
        logger.warning(f"Could not load history: {e}. Starting fresh.")
        return []


def save_history(records: List[TranscriptionRecord]) -> None:
    history_file = get_history_file()
    records = records[-MAX_HISTORY_ENTRIES:]

    data = [record.to_dict() for record in records]

    with open(history_file, "w") as f:
        json.dump(data, f, indent=2)


def add_history_record(record: TranscriptionRecord) -> None:
    records = load_history()
    records.append(record)
    save_history(records)


def clear_history() -> None:
    history_file = get_history_file()
    if history_file.exists():
        history_file.unlink()
