"""
Shared utility functions for profanity-checker.

This module provides small helpers used by the providers, the pipeline and
the HTTP layer.
"""


def sanitize_for_log(input_str: str) -> str:
    """
    Sanitize user input for logging to prevent log injection attacks.

    Replaces newlines, carriage returns, and tabs with their escaped
    representations.

    Args:
        input_str: User input string to sanitize

    Returns:
        Sanitized string safe for logging
    """
    return input_str.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")


def mask_secret(text: str, secret: str | None) -> str:
    """
    Replace every occurrence of a credential in text before it is logged.

    Examples:
        >>> mask_secret("https://api.example.com/?api_key=abc123&x=1", "abc123")
        'https://api.example.com/?api_key=***&x=1'
    """
    if not secret:
        return text
    return text.replace(secret, "***")


def format_title_label(title: str, season: int | None = None, episode: int | None = None) -> str:
    """
    Human-readable label for a title, with the episode marker for TV.

    Examples:
        >>> format_title_label("Breaking Bad", 1, 3)
        'Breaking Bad S1E3'
        >>> format_title_label("Heat")
        'Heat'
    """
    if season is not None and episode is not None:
        return f"{title} S{season}E{episode}"
    return title
