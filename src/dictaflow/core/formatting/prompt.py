from dataclasses import dataclass

from ..settings.config import DEFAULT_FORMATTING_TAG

_RULES = """\
## Rules
- NEVER add greetings (Hi, Hello, Hey, Dear) unless the input STARTS with one
- NEVER add closings (Thanks, Best, Regards, Sincerely) unless the input ENDS with one
- NEVER add a signature or name unless the input includes one
- NEVER add new sentences or ideas not in the original
- NEVER change the speaker's intent or meaning
- Minor grammar fixes (articles, prepositions) are OK
- REMOVE filler words: "um", "uh", "like", "you know", "basically"
- REMOVE "so" ONLY when used as a sentence-starter filler (keep "so that", "and so", etc.)
- FIX grammar: add missing articles, fix verb tense, improve flow
- FIX punctuation: periods, commas, question marks
- FIX capitalization: sentence starts, proper nouns, acronyms
- ADD paragraph breaks where appropriate between distinct sections or topics"""

FEW_SHOT_EXAMPLES = (
    (
        "Filler removal + grammar fix",
        "so the main issue is that um we need more time",
        "The main issue is that we need more time.",
    ),
    (
        "Body only - no salutations added",
        "the meeting is moved to 3pm please update your calendars",
        "The meeting is moved to 3pm. Please update your calendars.",
    ),
    (
        "Grammar improvement (adding articles)",
        "got it thanks ill take look and get back to you",
        "Got it, thanks! I'll take a look and get back to you.",
    ),
)


@dataclass(frozen=True)
class FormattingPrompt:
    system_prompt: str
    tag: str

    def user_prompt(self, text: str) -> str:
        return f"<input>{text}</input>"


def build_formatting_prompt(tag: str = DEFAULT_FORMATTING_TAG) -> FormattingPrompt:
    examples = "\n\n".join(
        f"### {title}:\n<input>{raw}</input>\n<{tag}>{formatted}</{tag}>"
        for title, raw, formatted in FEW_SHOT_EXAMPLES
    )
    system_prompt = (
        "# Text Formatting Task\n\n"
        f"{_RULES}\n\n"
        "## Examples\n\n"
        f"{examples}\n\n"
        "## Output Format\n"
        f"<{tag}>\n[Your formatted text]\n</{tag}>\n\n"
        "## Input Format\n"
        "<input>[Raw unformatted transcription]</input>\n"
    )
    return FormattingPrompt(system_prompt=system_prompt, tag=tag)
