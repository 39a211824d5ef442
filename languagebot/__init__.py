"""LanguageBot — spoken-language practice sessions with a generative partner."""

__version__ = "0.1.0"
