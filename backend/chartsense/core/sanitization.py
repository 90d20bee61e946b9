"""
Cleaning of user-supplied strings: upload filenames, column headers and
cell values, before they reach logs, storage or an LLM prompt.
"""
import os
import re
from typing import Any

CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f-\x9f]')
LINE_BREAKS = re.compile(r'[\r\n]+')

# Header cells may legitimately wrap (\n) or hold tabs
HEADER_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f]')
RESERVED_DEVICE_NAMES = re.compile(r'^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])$', re.IGNORECASE)
MAX_COLUMN_NAME_LENGTH = 1000

PROMPT_ROLE_MARKERS = ('SYSTEM:', 'USER:', 'ASSISTANT:', 'IGNORE', 'FORGET', 'NEW INSTRUCTION')


def sanitize_filename(filename: str, max_length: int = 255) -> str:
    """
    Reduce an upload's filename to a bare, printable basename.

    Directory parts from either path separator are dropped. When the name
    is too long the stem is cut and the extension kept, since the
    extension decides which decoder reads the file.

    Returns:
        The cleaned name, or ``"unknown"`` when nothing is left
    """
    if not filename:
        return "unknown"

    name = re.split(r'[/\\]', filename)[-1]
    name = CONTROL_CHARS.sub('', name).strip('. ')

    if len(name) > max_length:
        stem, ext = os.path.splitext(name)
        if len(ext) >= max_length:
            ext = ''
        name = stem[:max_length - len(ext)] + ext

    return name or "unknown"


def sanitize_for_logging(value: Any, max_length: int = 500) -> str:
    """Flatten a value (filename, header, cell) to one log-safe line."""
    if value is None or value == "":
        return ""

    text = LINE_BREAKS.sub(' ', str(value))
    text = CONTROL_CHARS.sub('', text)
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return text


def sanitize_for_prompt(text: str, max_length: int = 100) -> str:
    """
    Prepare a header, cell value or question for an LLM prompt.

    Non-printable characters are removed, the text is truncated and role
    markers are bracketed so the model reads them as data.
    """
    if not text:
        return ""

    cleaned = ''.join(ch for ch in str(text) if ch.isprintable())
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length] + "..."

    for marker in PROMPT_ROLE_MARKERS:
        cleaned = cleaned.replace(marker, f'[{marker}]')
    return cleaned


def validate_column_name(name: str) -> bool:
    """False for headers that are empty, oversized, path-like or device names."""
    if not name or len(name) > MAX_COLUMN_NAME_LENGTH:
        return False
    if '..' in name:
        return False
    if HEADER_CONTROL_CHARS.search(name):
        return False
    return not RESERVED_DEVICE_NAMES.match(name.strip())
