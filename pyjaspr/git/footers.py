"""Commit message trailer parsing.

A trailer block is the last blank-line separated paragraph of a commit message,
and only counts as one when every line in it looks like ``key: value``. This
keeps a closing URL or a sentence with a colon in it from being mistaken for
trailers.
"""

import re
from typing import Dict, Mapping, Optional, Tuple

COMMIT_ID_LABEL = "commit-id"

FOOTER_LINE_REGEX = re.compile(r'^([^\s:]+): ([^\s:]+)$')

PARAGRAPH_SEPARATOR = "\n\n"


def _last_paragraph_split(message: str) -> Tuple[str, Optional[str]]:
    trimmed = message.strip()
    index = trimmed.rfind(PARAGRAPH_SEPARATOR)
    if index == -1:
        return trimmed, None
    return trimmed[:index], trimmed[index + len(PARAGRAPH_SEPARATOR):]


def get_footers(message: str) -> Dict[str, str]:
    """Return the trailers of a message, or an empty dict if it has none."""
    _, block = _last_paragraph_split(message)
    if not block:
        return {}
    footers: Dict[str, str] = {}
    for line in block.split("\n"):
        match = FOOTER_LINE_REGEX.match(line)
        if not match:
            return {}
        footers[match.group(1)] = match.group(2)
    return footers


def add_footers(message: str, footers: Mapping[str, str]) -> str:
    """Append trailers, joining an existing trailer block if there is one."""
    lines = "\n".join(f"{key}: {value}" for key, value in footers.items())
    trimmed = message.strip()
    if get_footers(message):
        return f"{trimmed}\n{lines}\n"
    return f"{trimmed}\n\n{lines}\n"


def trim_footers(message: str) -> str:
    """Remove the trailer block, leaving the message untouched if it has none."""
    if not get_footers(message):
        return message
    head, _ = _last_paragraph_split(message)
    return head + "\n"


def get_subject_and_body(message: str) -> Tuple[str, Optional[str]]:
    """Split a message into a one-line subject and an optional body.

    A subject wrapped over several lines is folded back onto one line.
    """
    parts = message.strip().split(PARAGRAPH_SEPARATOR, 1)
    subject = parts[0].replace("\n", " ").strip()
    body = parts[1].strip() if len(parts) > 1 else ""
    return subject, (body or None)


def get_commit_id(message: str) -> Optional[str]:
    return get_footers(message).get(COMMIT_ID_LABEL)
