"""Silence gating and hallucination filtering around the recognizer."""

import unicodedata

import numpy as np

# Phrases Whisper-family models emit on silence or noise.
HALLUCINATION_PHRASES = frozenset(
    {
        "you",
        "you.",
        "thank you.",
        "thank you",
        "thanks for watching!",
        "thanks for watching.",
        "thank you for watching.",
        "thank you for watching!",
        "please subscribe.",
        "bye.",
        "bye!",
        ".",
        "[blank_audio]",
        "[music]",
        "(music)",
        "[silence]",
    }
)


def normalize_text(text: str) -> str:
    return unicodedata.normalize("NFC", text).lower().strip()


def is_known_hallucination(text: str) -> bool:
    return normalize_text(text) in HALLUCINATION_PHRASES


def rms_level(audio: np.ndarray) -> float:
    """Root-mean-square level of float audio in [-1, 1]."""
    if audio.size == 0:
        return 0.0
    samples = audio.astype(np.float64)
    return float(np.sqrt(np.mean(np.square(samples))))


def pad_to_min_duration(
    audio: np.ndarray, sample_rate: int, min_duration_s: float
) -> np.ndarray:
    min_samples = int(sample_rate * min_duration_s)
    if min_samples <= 0 or len(audio) >= min_samples:
        return audio
    padded = np.zeros(min_samples, dtype=audio.dtype)
    padded[: len(audio)] = audio
    return padded
