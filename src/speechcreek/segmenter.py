# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Script segmentation module.

Splits raw script text into an ordered list of paragraphs, the unit the
matcher aligns speech against. Paragraphs are separated by one or more blank
lines; each keeps a stable character offset into the normalized script so the
renderer (or the fallback estimate below) can place it vertically.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass

# Separator used when rejoining paragraphs; offsets are counted with it
PARAGRAPH_SEPARATOR: str = "\n\n"

# Two or more line breaks, with only spaces/tabs between them
_BLANK_LINE_RE: re.Pattern[str] = re.compile(r'(?:\r?\n[ \t]*){2,}')


@dataclass(frozen=True)
class Paragraph:
    """A non-empty block of script text."""
    index: int  # Position in document order
    text: str  # Trimmed paragraph text
    char_offset: int  # Offset of the paragraph in the rejoined script

    def __repr__(self) -> str:
        preview: str = self.text if len(self.text) <= 30 else self.text[:27] + "..."
        return f"Paragraph({self.index} @{self.char_offset}: '{preview}')"


def segment(script: str) -> list[Paragraph]:
    """Split a script into paragraphs on blank-line boundaries.

    Candidates are trimmed and empty ones dropped. The offset of each paragraph
    is the running length of the paragraphs before it plus one separator each,
    so offsets index into join_paragraphs() of the result.

    Examples:
        "Hello.\\n\\nWorld." -> [Paragraph(0, "Hello.", 0), Paragraph(1, "World.", 8)]
        "  \\n\\n\\n  " -> []
    """
    paragraphs: list[Paragraph] = []
    offset: int = 0
    for candidate in _BLANK_LINE_RE.split(script):
        text: str = candidate.strip()
        if not text:
            continue
        paragraphs.append(Paragraph(
            index=len(paragraphs),
            text=text,
            char_offset=offset
        ))
        offset += len(text) + len(PARAGRAPH_SEPARATOR)
    return paragraphs


def join_paragraphs(paragraphs: Sequence[Paragraph]) -> str:
    """Rejoin paragraphs into a script using the standard separator."""
    return PARAGRAPH_SEPARATOR.join(p.text for p in paragraphs)


def normalize_word(word: str) -> str:
    """Normalize a word for matching (lowercase, strip punctuation)."""
    return re.sub(r'[^\w\s]', '', word.lower()).strip()


def tokenize(text: str) -> list[str]:
    """Split text on whitespace into normalized, non-empty words."""
    words: list[str] = [normalize_word(w) for w in text.split()]
    return [w for w in words if w]


def estimate_paragraph_offset(
    paragraphs: Sequence[Paragraph],
    index: int,
    char_height_ratio: float = 0.6
) -> float:
    """
    Estimate a paragraph's vertical offset from its character offset.

    Used until the renderer reports measured offsets.

    Args:
        paragraphs: Current paragraph list
        index: Paragraph index
        char_height_ratio: Scroll units per character of preceding text

    Returns:
        Estimated offset, or 0.0 for an index out of range
    """
    if index < 0 or index >= len(paragraphs):
        return 0.0
    return paragraphs[index].char_offset * char_height_ratio
