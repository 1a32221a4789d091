from .extractor import (
    ExtractionOutcome,
    Extracted,
    FallbackOriginal,
    FallbackReason,
    FormatResult,
    extract_formatted_text,
    resolve_extraction,
)
from .prompt import FormattingPrompt, build_formatting_prompt
from .providers import (
    FormatRequest,
    FormattingProvider,
    FormattingProviderKind,
    LiteLLMFormatter,
    OllamaFormatter,
    create_formatting_provider,
)
from .vocabulary import apply_vocabulary_replacements

__all__ = [
    "ExtractionOutcome",
    "Extracted",
    "FallbackOriginal",
    "FallbackReason",
    "FormatRequest",
    "FormatResult",
    "FormattingPrompt",
    "FormattingProvider",
    "FormattingProviderKind",
    "LiteLLMFormatter",
    "OllamaFormatter",
    "apply_vocabulary_replacements",
    "build_formatting_prompt",
    "create_formatting_provider",
    "extract_formatted_text",
    "resolve_extraction",
]
