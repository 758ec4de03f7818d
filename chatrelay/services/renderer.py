# chatrelay/services/renderer.py

from __future__ import annotations

import re
from typing import Callable, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

# Takes raw message text, returns sanitized markup. Supplied by the host
# application; the relay itself never turns text into HTML.
ContentRenderer = Callable[[str], str]

MARKDOWN_PATTERNS = [
    re.compile(r"\*\*(.*?)\*\*"),
    re.compile(r"\*(.*?)\*"),
    re.compile(r"__(.*?)__"),
    re.compile(r"~~(.*?)~~"),
    re.compile(r"`(.*?)`"),
    re.compile(r"```([\s\S]*?)```", re.MULTILINE),
    re.compile(r"\[(.*?)\]\((.*?)\)"),
    re.compile(r"^#+\s+.+", re.MULTILINE),
    re.compile(r"^>\s+.+", re.MULTILINE),
    re.compile(r"^-\s+.+", re.MULTILINE),
    re.compile(r"^\d+\.\s+.+", re.MULTILINE),
    re.compile(r"\|.*\|"),
]


def contains_markdown(text: str) -> bool:
    return any(p.search(text) for p in MARKDOWN_PATTERNS)


def render_content(content: str, renderer: Optional[ContentRenderer]) -> Tuple[Optional[str], bool]:
    """
    Run the optional renderer over message content.

    Returns:
        (processed_content, is_markdown). Content without markdown syntax,
        a missing renderer, or a renderer that raises all yield (None, False)
        so the raw content is delivered unchanged.
    """
    if renderer is None or not contains_markdown(content):
        return None, False
    try:
        return renderer(content), True
    except Exception:
        logger.exception("Content rendering failed, delivering raw text")
        return None, False
