"""
Native engine variants.

Each candidate names one compiled build of the speech backend and the
accelerator family it targets. Candidates are static for the process
lifetime; they come from the bundled engines.json or from settings.
"""

import importlib
import json
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from ...utils.logger import get_logger
from ...utils.platform import detect_nvidia_gpu, get_platform
from ..errors import EngineLoadFailure, LoadFailureKind

logger = get_logger(__name__)

CPU_VARIANT = "cpu"

_SHARED_LIBRARY_ERRORS = (
    "cannot open shared object",
    "dll load failed",
    "library not loaded",
    "image not found",
)


class EngineCandidate(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    variant_tag: str
    priority: int = 0
    module: str = "sherpa_onnx"
    provider: str = ""

    @model_validator(mode="before")
    @classmethod
    def _default_provider(cls, data):
        if isinstance(data, dict) and not data.get("provider"):
            data = {**data, "provider": data.get("variant_tag", "")}
        return data

    @property
    def is_accelerated(self) -> bool:
        return self.variant_tag != CPU_VARIANT


class NativeBinding:
    """Handle on one imported engine variant."""

    def __init__(self, candidate: EngineCandidate, module: ModuleType):
        self.candidate = candidate
        self._module: Optional[ModuleType] = module

    @property
    def module(self) -> ModuleType:
        if self._module is None:
            raise RuntimeError(f"Binding '{self.candidate.name}' was released")
        return self._module

    @property
    def provider(self) -> str:
        return self.candidate.provider

    @property
    def is_released(self) -> bool:
        return self._module is None

    def release(self) -> None:
        if self._module is not None:
            logger.debug(f"Releasing engine binding '{self.candidate.name}'")
            self._module = None


@dataclass
class LoadedEngine:
    candidate: EngineCandidate
    handle: NativeBinding


BindingLoader = Callable[[EngineCandidate], NativeBinding]


def _accelerator_probes() -> Dict[str, Callable[[], bool]]:
    return {
        "cuda": detect_nvidia_gpu,
        "coreml": lambda: get_platform() == "macos",
        "directml": lambda: get_platform() == "windows",
        CPU_VARIANT: lambda: True,
    }


def accelerator_available(variant_tag: str) -> bool:
    probe = _accelerator_probes().get(variant_tag)
    if probe is None:
        logger.warning(f"Unknown accelerator family '{variant_tag}'")
        return False
    return probe()


def import_binding(candidate: EngineCandidate) -> NativeBinding:
    if not accelerator_available(candidate.variant_tag):
        raise EngineLoadFailure(
            candidate,
            LoadFailureKind.INCOMPATIBLE_ACCELERATOR,
            f"no usable '{candidate.variant_tag}' accelerator on this machine",
        )

    try:
        module = importlib.import_module(candidate.module)
    except ModuleNotFoundError as e:
        raise EngineLoadFailure(
            candidate, LoadFailureKind.MISSING_DEPENDENCY, str(e)
        ) from e
    except ImportError as e:
        message = str(e)
        if candidate.is_accelerated and any(
            marker in message.lower() for marker in _SHARED_LIBRARY_ERRORS
        ):
            kind = LoadFailureKind.INCOMPATIBLE_ACCELERATOR
        else:
            kind = LoadFailureKind.CORRUPT_ARTIFACT
        raise EngineLoadFailure(candidate, kind, message) from e
    except OSError as e:
        raise EngineLoadFailure(
            candidate, LoadFailureKind.CORRUPT_ARTIFACT, str(e)
        ) from e

    if not hasattr(module, "OfflineRecognizer"):
        raise EngineLoadFailure(
            candidate,
            LoadFailureKind.CORRUPT_ARTIFACT,
            f"module '{candidate.module}' has no OfflineRecognizer",
        )

    return NativeBinding(candidate, module)


def _bundled_engines_path() -> Path:
    return Path(__file__).parent / "engines.json"


def parse_engine_candidates(entries: List[dict]) -> List[EngineCandidate]:
    candidates = [EngineCandidate.model_validate(entry) for entry in entries]
    return sorted(candidates, key=lambda c: c.priority)


def load_engine_candidates(path: Optional[Path] = None) -> List[EngineCandidate]:
    engines_path = path or _bundled_engines_path()
    if not engines_path.exists():
        logger.warning(f"Engine candidate list not found: {engines_path}")
        return []
    with open(engines_path, "r") as f:
        return parse_engine_candidates(json.load(f))
