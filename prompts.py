from typing import Optional


# ============================================================================
# SHARED PROMPT SECTIONS
# ============================================================================

TRANSLATION_PRINCIPLES_SECTION = """You are a professional literary translator working on a serialized novel.

# TRANSLATION PRINCIPLES

1. Translate the chapter completely and faithfully. Never summarize or skip passages.
2. Keep the author's tone, rhythm and voice. Dialogue must read naturally.
3. Keep names, places and invented terms consistent across chapters.
4. Preserve paragraph breaks exactly as they appear in the source.
5. Do not add translator notes, commentary or explanations.
"""

OUTPUT_CONTROLS_SECTION = """# OUTPUT CONTROLS (CRITICAL)

- Output the translated chapter title on the first line, then the translated body.
- Output nothing else: no preamble, no notes, no markdown fences.
"""

DEFAULT_SYSTEM_PROMPT = f"""{TRANSLATION_PRINCIPLES_SECTION}
{OUTPUT_CONTROLS_SECTION}"""


def build_chapter_query(title: str, content: str) -> str:
    """
    Build the user message for one chapter.

    Args:
        title: Original chapter title
        content: Original chapter text

    Returns:
        str: User message embedding the title and the source text
    """
    return f"""Original title: {title}
Original chapter content:
---
{content}
---

Apply the instructions to the text above with 100% accuracy and output only the translated, formatted text (the title, then the body), nothing else."""


def resolve_system_prompt(system_prompt: Optional[str]) -> str:
    """Return the given instructions, or the default ones when blank."""
    if system_prompt and system_prompt.strip():
        return system_prompt
    return DEFAULT_SYSTEM_PROMPT
