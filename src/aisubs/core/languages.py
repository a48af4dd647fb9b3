"""Display names for target language codes.

Used for labelling subtitle options in players, never for translation logic:
prompts pass the display name alongside the code.
"""

from __future__ import annotations

# fmt: off
LANGUAGE_NAMES: dict[str, str] = {
    "af": "Afrikaans",   "ar": "Arabic",        "az": "Azerbaijani",
    "be": "Belarusian",  "bg": "Bulgarian",     "bn": "Bengali",
    "bs": "Bosnian",     "ca": "Catalan",       "cs": "Czech",
    "cy": "Welsh",       "da": "Danish",        "de": "German",
    "el": "Greek",       "en": "English",       "es": "Spanish",
    "et": "Estonian",    "eu": "Basque",        "fa": "Persian",
    "fi": "Finnish",     "fr": "French",        "ga": "Irish",
    "gl": "Galician",    "he": "Hebrew",        "hi": "Hindi",
    "hr": "Croatian",    "hu": "Hungarian",     "hy": "Armenian",
    "id": "Indonesian",  "is": "Icelandic",     "it": "Italian",
    "ja": "Japanese",    "ka": "Georgian",      "kk": "Kazakh",
    "ko": "Korean",      "lt": "Lithuanian",    "lv": "Latvian",
    "mk": "Macedonian",  "ml": "Malayalam",     "mn": "Mongolian",
    "ms": "Malay",       "mt": "Maltese",       "nl": "Dutch",
    "no": "Norwegian",   "pl": "Polish",        "pt": "Portuguese",
    "pt-br": "Portuguese (Brazil)",             "ro": "Romanian",
    "ru": "Russian",     "sk": "Slovak",        "sl": "Slovenian",
    "sq": "Albanian",    "sr": "Serbian",       "sv": "Swedish",
    "sw": "Swahili",     "ta": "Tamil",         "te": "Telugu",
    "th": "Thai",        "tl": "Tagalog",       "tr": "Turkish",
    "uk": "Ukrainian",   "ur": "Urdu",          "uz": "Uzbek",
    "vi": "Vietnamese",  "zh": "Chinese",       "zh-tw": "Chinese (Traditional)",
}
# fmt: on

_CODE_CHARS = set("abcdefghijklmnopqrstuvwxyz-")


def normalize_code(code: str) -> str:
    """Lower-case a language code and unify separators (``pt_BR`` -> ``pt-br``)."""
    return code.strip().lower().replace("_", "-")


def is_known_language(code: str) -> bool:
    """Check if a code has an entry in the display-name table."""
    return normalize_code(code) in LANGUAGE_NAMES


def language_name(code: str) -> str:
    """Get the display name for a code, or the upper-cased code if unknown."""
    normalized = normalize_code(code)
    return LANGUAGE_NAMES.get(normalized, normalized.upper())


def validate_language(code: str) -> str:
    """Return the normalized code, raising ValueError if it is not code-shaped.

    Unknown but well-formed codes are accepted: the translation backend may
    support more languages than the display table lists.
    """
    normalized = normalize_code(code)
    if not (2 <= len(normalized) <= 8) or not set(normalized) <= _CODE_CHARS:
        raise ValueError(
            f"Invalid language code: '{code}'. "
            f"Run 'aisubs languages' to see the {len(LANGUAGE_NAMES)} named languages."
        )
    return normalized
