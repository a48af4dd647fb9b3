"""Prompt templates for subtitle translation."""

# Cue line breaks travel through the numbered-line protocol as this marker.
LINE_BREAK = "<br>"

TRANSLATION_SYSTEM = """\
You are a professional subtitle translator. Translate subtitle segments accurately \
while keeping them natural and concise for on-screen reading.

Rules:
- Translate each numbered line from {source_lang} to {target_lang}
- Keep translations concise — suitable for subtitle display
- Preserve the tone and register of the original
- Handle idioms and colloquialisms naturally in the target language
- Keep every {line_break} marker: it separates the lines of one subtitle
- Do NOT merge or split segments — return the EXACT same number of lines
- Return ONLY the translated lines, numbered exactly as the input

Examples (en → fr):
Input:
1. Hello, how are you?
2. I'm very happy {line_break} to see you.
3. The weather is wonderful today.

Output:
1. Bonjour, comment allez-vous ?
2. Je suis très content {line_break} de vous voir.
3. Il fait un temps magnifique aujourd'hui.
"""

TRANSLATION_USER = """\
Translate these {count} subtitle segments from {source_lang} to {target_lang}. \
Return exactly {count} numbered lines, one per input line.

{numbered_segments}
"""


def encode_line_breaks(text: str) -> str:
    """Flatten a multi-line cue text into one prompt line."""
    return f" {LINE_BREAK} ".join(part.strip() for part in text.split("\n"))


def decode_line_breaks(text: str) -> str:
    """Restore cue line breaks from a translated prompt line."""
    parts = [part.strip() for part in text.split(LINE_BREAK)]
    return "\n".join(part for part in parts if part)


def format_numbered_segments(texts: list[str]) -> str:
    """Format a list of subtitle texts as numbered lines for LLM input."""
    return "\n".join(f"{i + 1}. {encode_line_breaks(text)}" for i, text in enumerate(texts))


def format_history_context(
    source_texts: list[str],
    translated_texts: list[str],
) -> str:
    """Format previously translated pairs as reference context.

    Provides the LLM with its own recent translation style and terminology
    to maintain consistency across batches.
    """
    if not source_texts or not translated_texts:
        return ""
    pairs = []
    for src, tgt in zip(source_texts, translated_texts):
        pairs.append(f"  {encode_line_breaks(src)} → {encode_line_breaks(tgt)}")
    return (
        "Previous translations for style reference (do NOT re-translate these):\n"
        + "\n".join(pairs)
        + "\n\n"
    )


def format_surrounding_context(before: list[str], after: list[str]) -> str:
    """Format neighbouring cues that are shown but not translated."""
    context_parts = []
    if before:
        context_parts.append(
            "\n".join(f"[preceding context] {encode_line_breaks(t)}" for t in before)
        )
    if after:
        context_parts.append("\n".join(f"[following context] {encode_line_breaks(t)}" for t in after))
    if not context_parts:
        return ""
    return (
        "For context only (do NOT translate these, they are just for reference):\n"
        + "\n".join(context_parts)
        + "\n\n"
    )


def _split_number(line: str) -> tuple[int | None, str]:
    for sep in [". ", ") ", ": "]:
        parts = line.split(sep, 1)
        if len(parts) == 2 and parts[0].strip().isdigit():
            return int(parts[0].strip()), parts[1].strip()
    return None, line


def parse_numbered_response(response: str, expected_count: int) -> tuple[list[str], bool]:
    """Parse a numbered LLM response back into a list of texts.

    Handles various formats:
    - "1. Text here"
    - "1) Text here"
    - "1: Text here"
    - Plain lines (fallback)

    When every line is numbered, texts are placed by their number, so a
    response that reorders lines still maps back to the right segment.

    Returns:
        Tuple of (parsed texts, exact_match) where exact_match is True
        if every expected segment got exactly one non-empty text. The list
        always has expected_count items; missing ones are empty strings.
    """
    lines = [line.strip() for line in response.strip().splitlines() if line.strip()]
    numbered = [_split_number(line) for line in lines]

    if numbered and all(number is not None for number, _ in numbered):
        slots: list[str | None] = [None] * expected_count
        exact_match = len(numbered) == expected_count
        for number, text in numbered:
            if 1 <= number <= expected_count and slots[number - 1] is None:
                slots[number - 1] = text
            else:
                exact_match = False
        parsed = [slot or "" for slot in slots]
    else:
        parsed = [text for _, text in numbered]
        exact_match = len(parsed) == expected_count
        parsed = parsed[:expected_count]
        while len(parsed) < expected_count:
            parsed.append("")

    if any(not text for text in parsed):
        exact_match = False
    return parsed, exact_match
