"""Model directory layout detection for sherpa-onnx model families."""

import os
from typing import Dict, List, Optional, Tuple

from platformdirs import user_data_path

WHISPER = "whisper"
TRANSDUCER = "transducer"

# family -> role -> (match mode, candidate names in preference order)
# "suffix" matches any file ending with a candidate, "exact" requires the name.
MODEL_LAYOUTS: Dict[str, Dict[str, Tuple[str, List[str]]]] = {
    TRANSDUCER: {
        "encoder": ("exact", ["encoder.int8.onnx", "encoder.onnx", "encoder.fp16.onnx"]),
        "decoder": ("exact", ["decoder.int8.onnx", "decoder.onnx", "decoder.fp16.onnx"]),
        "joiner": ("exact", ["joiner.int8.onnx", "joiner.onnx", "joiner.fp16.onnx"]),
        "tokens": ("exact", ["tokens.txt"]),
    },
    WHISPER: {
        "encoder": ("suffix", ["-encoder.int8.onnx", "-encoder.onnx"]),
        "decoder": ("suffix", ["-decoder.int8.onnx", "-decoder.onnx"]),
        "tokens": ("suffix", ["-tokens.txt", "tokens.txt"]),
    },
}


def get_models_dir() -> str:
    return str(user_data_path("dictaflow", appauthor=False) / "models")


def resolve_model_path(model_path: str) -> str:
    """Relative model names live under the user models directory."""
    if os.path.isabs(model_path):
        return model_path
    return os.path.join(get_models_dir(), model_path)


def _find(filenames: List[str], directory: str, mode: str, candidates: List[str]) -> Optional[str]:
    for candidate in candidates:
        if mode == "exact":
            if candidate in filenames:
                return os.path.join(directory, candidate)
            continue
        for filename in filenames:
            if filename.endswith(candidate):
                return os.path.join(directory, filename)
    return None


def locate_model_files(model_path: str, family: str) -> Optional[Dict[str, str]]:
    """
    Map each file role of a model family to a path inside model_path.

    Returns:
        Role -> path, or None when any role has no matching file.
    """
    try:
        filenames = sorted(os.listdir(model_path))
    except OSError:
        return None

    files = {}
    for role, (mode, candidates) in MODEL_LAYOUTS[family].items():
        path = _find(filenames, model_path, mode, candidates)
        if path is None:
            return None
        files[role] = path
    return files


def detect_model_type(model_path: str) -> Optional[str]:
    """Infer the model family from the files present in the directory."""
    # Transducer first: its bare tokens.txt would also satisfy the whisper layout.
    for family in (TRANSDUCER, WHISPER):
        if locate_model_files(model_path, family) is not None:
            return family
    return None
