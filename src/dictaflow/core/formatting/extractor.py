"""
Delimited-output extraction for formatting responses.

The formatting backend is told to wrap its answer in a <tag>...</tag> block;
the first such block wins. Anything else falls back to the original text, and
the reason is kept for diagnostics only.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from ..settings.config import DEFAULT_FORMATTING_TAG


class FallbackReason(str, Enum):
    NO_MARKERS = "no_markers"
    MALFORMED_MARKERS = "malformed_markers"
    AMBIGUOUS_MARKERS = "ambiguous_markers"
    EMPTY_CONTENT = "empty_content"
    WHITESPACE_ONLY = "whitespace_only"
    TRANSPORT_FAILURE = "transport_failure"
    MALFORMED_RESPONSE = "malformed_response"


@dataclass(frozen=True)
class Extracted:
    text: str


@dataclass(frozen=True)
class FallbackOriginal:
    reason: FallbackReason


ExtractionOutcome = Union[Extracted, FallbackOriginal]


@dataclass(frozen=True)
class FormatResult:
    formatted_text: str
    used_fallback: bool = False
    fallback_reason: Optional[FallbackReason] = None


def extract_formatted_text(
    response: str, tag: str = DEFAULT_FORMATTING_TAG
) -> ExtractionOutcome:
    """
    Return the body of the first well-formed <tag>...</tag> pair.

    Text after that pair, including repeated pairs or stray close markers, is
    ignored. A second open marker before the first close cannot be resolved
    to one pair and counts as ambiguous.
    """
    open_marker = f"<{tag}>"
    close_marker = f"</{tag}>"

    start = response.find(open_marker)
    if start == -1:
        if close_marker in response:
            return FallbackOriginal(FallbackReason.MALFORMED_MARKERS)
        return FallbackOriginal(FallbackReason.NO_MARKERS)

    body_start = start + len(open_marker)
    end = response.find(close_marker, body_start)
    if end == -1:
        return FallbackOriginal(FallbackReason.MALFORMED_MARKERS)

    inner = response[body_start:end]
    if open_marker in inner:
        return FallbackOriginal(FallbackReason.AMBIGUOUS_MARKERS)
    if inner == "":
        return FallbackOriginal(FallbackReason.EMPTY_CONTENT)
    if not inner.strip():
        return FallbackOriginal(FallbackReason.WHITESPACE_ONLY)
    return Extracted(inner.strip())


def resolve_extraction(outcome: ExtractionOutcome, original_text: str) -> FormatResult:
    if isinstance(outcome, Extracted):
        return FormatResult(formatted_text=outcome.text)
    return FormatResult(
        formatted_text=original_text,
        used_fallback=True,
        fallback_reason=outcome.reason,
    )
