"""
Text normalization ahead of field extraction.

Cleans OCR output into ordered lines without dropping content: control
characters go, runs of spaces collapse, blank lines are skipped. Line
order is preserved because several extractors rely on position.
"""

import logging
import re
from bisect import bisect_right
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f\u200b-\u200d\ufeff]')
_SPACE_RUNS = re.compile(r'[ \t\u00a0]+')
_SPACED_LETTERS = re.compile(r'^(?:[A-Za-z] ){2,}[A-Za-z]$')


@dataclass(frozen=True)
class NormalizedText:
    """
    Normalized view of one OCR run.

    lines: cleaned non-blank lines in reading order
    text: lines joined with newlines (what extractors match against)
    flat: single whitespace-collapsed string
    line_offsets: start offset of each line within text
    source: the processed input prefix with control characters removed,
        original line breaks and spacing kept (traceability checks run here)
    truncated: input exceeded the size ceiling and was cut
    """
    lines: tuple[str, ...] = ()
    text: str = ""
    flat: str = ""
    line_offsets: tuple[int, ...] = ()
    source: str = ""
    truncated: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def line_index(self, offset: int) -> int:
        """Index of the line containing a character offset of text."""
        if not self.line_offsets:
            return 0
        return max(0, bisect_right(self.line_offsets, offset) - 1)

    def line_span(self, index: int) -> tuple[int, int]:
        start = self.line_offsets[index]
        return start, start + len(self.lines[index])


def truncate_text(raw_text: str, max_chars: int) -> tuple[str, bool]:
    """
    Cut oversized input to a deterministic prefix.

    The cut lands on the last line break inside the ceiling so no line is
    split in half; without one, the ceiling itself is used.
    """
    if max_chars <= 0 or len(raw_text) <= max_chars:
        return raw_text, False

    prefix = raw_text[:max_chars]
    last_break = prefix.rfind('\n')
    if last_break > 0:
        prefix = prefix[:last_break]

    return prefix, True


def _normalize_line(line: str) -> str:
    line = _CONTROL_CHARS.sub('', line)
    line = _SPACE_RUNS.sub(' ', line).strip()

    # OCR letter spacing: "W A L M A R T" -> "WALMART"
    if _SPACED_LETTERS.match(line):
        line = line.replace(' ', '')

    return line


def normalize_text(raw_text: str, max_chars: int = 0) -> NormalizedText:
    """
    Normalize raw OCR text into lines.

    Args:
        raw_text: Text as produced by the OCR step
        max_chars: Size ceiling; 0 disables truncation

    Returns:
        NormalizedText (empty for blank input)
    """
    if not raw_text or not isinstance(raw_text, str):
        return NormalizedText()

    text, truncated = truncate_text(raw_text, max_chars)
    if truncated:
        logger.warning("Input of %d chars truncated to %d", len(raw_text), len(text))

    text = text.replace('\r\n', '\n').replace('\r', '\n')

    lines = []
    for line in text.split('\n'):
        cleaned = _normalize_line(line)
        if cleaned:
            lines.append(cleaned)

    offsets = []
    offset = 0
    for line in lines:
        offsets.append(offset)
        offset += len(line) + 1

    return NormalizedText(
        lines=tuple(lines),
        text='\n'.join(lines),
        flat=' '.join(lines),
        line_offsets=tuple(offsets),
        source=_CONTROL_CHARS.sub('', text),
        truncated=truncated,
    )


def is_traceable(value: str, source: str) -> bool:
    """
    True when value occurs in source, ignoring whitespace differences.

    source is NormalizedText.source: the input prefix that was actually
    processed, already stripped of control characters. Normalization only
    removes control characters and whitespace, so any value cut from
    normalized text passes; anything invented does not.
    """
    compact = re.sub(r'\s+', '', value)
    if not compact:
        return False

    pattern = r'\s*'.join(re.escape(ch) for ch in compact)
    return re.search(pattern, source) is not None
