"""Language tag lookups shared by the agent prompts, capture, and synthesis."""

_LANGUAGE_NAMES: dict[str, str] = {
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "ar": "Arabic",
    "hi": "Hindi",
    "en": "English",
}


def primary_subtag(language_tag: str) -> str:
    """Return the lowercase primary subtag, e.g. ``zh`` for ``zh-CN``."""
    return language_tag.replace("_", "-").split("-", 1)[0].strip().lower()


def language_name(language_tag: str) -> str:
    """Return the English display name for *language_tag*.

    Unknown tags fall back to the tag itself so prompts stay meaningful.
    """
    return _LANGUAGE_NAMES.get(primary_subtag(language_tag), language_tag)
