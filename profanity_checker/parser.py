"""
Subtitle text extraction.

Turns a raw SRT/VTT-like file into one line of plain dialogue so that files
from different providers can be compared by length alone.
"""

import re

SEQUENCE_PATTERN = re.compile(r"^\d+$")
TIMESTAMP_PATTERN = re.compile(r"^\d{2}:\d{2}:\d{2}")

# Angle-bracket markup (<i>, <font ...>) and ASS/SSA override blocks ({\an8})
TAG_REMOVAL_PATTERN = re.compile(r"<[^>]*>")
BRACE_TAG_PATTERN = re.compile(r"\{[^}]*\}")


def parse_srt(content: str) -> str:
    """
    Strip sequence numbers, timestamps and markup from subtitle content.

    Args:
        content: Raw subtitle file content

    Returns:
        Surviving dialogue lines joined by single spaces

    Examples:
        >>> parse_srt("1\\n00:00:01,000 --> 00:00:02,000\\n<i>Hello</i>\\n")
        'Hello'
    """
    text_lines = []

    for line in content.split("\n"):
        line = line.strip()
        if not line:
            continue
        if SEQUENCE_PATTERN.match(line) or TIMESTAMP_PATTERN.match(line):
            continue

        cleaned = TAG_REMOVAL_PATTERN.sub("", line)
        cleaned = BRACE_TAG_PATTERN.sub("", cleaned).strip()
        if cleaned:
            text_lines.append(cleaned)

    return " ".join(text_lines)
