import re
from typing import Optional

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def clean_text(value: Optional[str], max_length: int = 255, multiline: bool = False) -> str:
    """
    Normalize free-text user input before storage.

    Strips surrounding whitespace and control characters, collapses newlines
    unless ``multiline`` is set, and truncates to ``max_length``.
    """
    if not value:
        return ""

    value = CONTROL_CHARS.sub("", str(value)).strip()
    if not multiline:
        value = re.sub(r"\s*[\r\n]+\s*", " ", value)

    return value[:max_length]
