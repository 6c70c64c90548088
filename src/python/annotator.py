"""
Annotator - Citation Segments for Rendering

Turns answer text into an ordered list of segments, each either plain text or a
citation token, so the rendering layer can make citations interactive without
touching any other character of the text.

ARCHITECTURAL PRINCIPLE:
The text is NEVER modified. Segments are slices of the original string, and
concatenating every segment's text in order reproduces the input exactly,
including whitespace and punctuation.

Overlap policy:
  1. Citations are matched longest first, so "John 3:16" claims its span before
     "John 3" (which shares the prefix) can.
  2. The text is walked left to right with a skip cursor; an occurrence that
     starts inside an already-claimed span is dropped.
"""

import re
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Union

from citation_extractor import (
    Citation,
    CitationExtractor,
    CitationLike,
    DEFAULT_EXTRACTOR,
    as_citation,
)


# Characters that may directly precede a citation besides whitespace ("(" is not one)
CITATION_LEAD_CHARS = ';:.,>"\''

# Blank-line paragraph separator (the separator itself is kept)
PARAGRAPH_SEPARATOR_RE = re.compile(r'(\n[ \t]*\n\s*)')


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class Occurrence:
    """A citation's literal appearance at [start, end) in one text."""
    citation: Citation
    start: int
    end: int


@dataclass(frozen=True)
class PlainSegment:
    """Text that is rendered as-is."""
    text: str
    type: ClassVar[str] = 'plain'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'text': self.text}


@dataclass(frozen=True)
class CitationSegment:
    """Text that is rendered as an activatable citation token."""
    text: str
    citation: Citation
    type: ClassVar[str] = 'citation'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'text': self.text, 'citation': self.citation.text}


Segment = Union[PlainSegment, CitationSegment]


# ============================================================================
# OCCURRENCE MATCHING
# ============================================================================

def _occurrence_pattern(citation_text: str) -> 're.Pattern':
    """Match citation_text only at a word start and a word end."""
    lead = re.escape(CITATION_LEAD_CHARS)
    return re.compile(rf'(?<![^\s{lead}]){re.escape(citation_text)}(?!\w)')


def _unique_citations(citations: Iterable[CitationLike]) -> List[Citation]:
    unique: Dict[str, Citation] = {}
    for value in citations or []:
        citation = as_citation(value)
        if citation.text and citation.text not in unique:
            unique[citation.text] = citation
    return list(unique.values())


def find_occurrences(text: str, citations: Iterable[CitationLike]) -> List[Occurrence]:
    """
    Locate the non-overlapping citation occurrences in text.

    Args:
        text: The text to scan
        citations: Citations (or plain citation strings) to look for

    Returns:
        Occurrences in left-to-right order; no two overlap
    """
    if not isinstance(text, str) or not text:
        return []

    ordered = sorted(_unique_citations(citations), key=lambda c: len(c.text), reverse=True)

    # First (= longest) citation to claim a start position keeps it
    by_start: Dict[int, Occurrence] = {}
    for citation in ordered:
        for match in _occurrence_pattern(citation.text).finditer(text):
            if match.start() not in by_start:
                by_start[match.start()] = Occurrence(citation, match.start(), match.end())

    occurrences = []
    skip_to = 0
    for start in sorted(by_start):
        if start < skip_to:
            continue
        occurrence = by_start[start]
        occurrences.append(occurrence)
        skip_to = occurrence.end
    return occurrences


# ============================================================================
# ANNOTATION
# ============================================================================

def annotate(text, citations: Optional[Iterable[CitationLike]] = None) -> List[Segment]:
    """
    Split text into plain and citation segments.

    Non-string text is treated as the empty string. With no citations, or none
    that occur in the text, the result is a single PlainSegment of the text.
    """
    if not isinstance(text, str):
        text = ''

    occurrences = find_occurrences(text, citations or [])
    if not occurrences:
        return [PlainSegment(text)]

    segments: List[Segment] = []
    cursor = 0
    for occurrence in occurrences:
        if occurrence.start > cursor:
            segments.append(PlainSegment(text[cursor:occurrence.start]))
        segments.append(CitationSegment(text[occurrence.start:occurrence.end], occurrence.citation))
        cursor = occurrence.end
    if cursor < len(text):
        segments.append(PlainSegment(text[cursor:]))
    return segments


def annotate_text(text, extractor: Optional[CitationExtractor] = None) -> List[Segment]:
    """Extract citations from text and annotate it with them."""
    extractor = extractor or DEFAULT_EXTRACTOR
    return annotate(text, extractor.extract(text))


def coalesce_segments(segments: Iterable[Segment]) -> List[Segment]:
    """Merge adjacent plain segments."""
    merged: List[Segment] = []
    for segment in segments:
        if merged and isinstance(segment, PlainSegment) and isinstance(merged[-1], PlainSegment):
            merged[-1] = PlainSegment(merged[-1].text + segment.text)
        else:
            merged.append(segment)
    return merged


def annotate_paragraphs(text, extractor: Optional[CitationExtractor] = None) -> List[List[Segment]]:
    """
    Annotate a markdown-style answer paragraph by paragraph.

    Each paragraph's blank-line separator is kept at the end of that
    paragraph's segments, so flattening the result still reproduces the text.
    """
    if not isinstance(text, str) or not text:
        return [[PlainSegment('')]]

    parts = PARAGRAPH_SEPARATOR_RE.split(text)
    paragraphs: List[List[Segment]] = []
    for i in range(0, len(parts), 2):
        body = parts[i]
        separator = parts[i + 1] if i + 1 < len(parts) else ''
        segments = annotate_text(body, extractor) if body else []
        if separator:
            segments = coalesce_segments(segments + [PlainSegment(separator)])
        if segments:
            paragraphs.append(segments)
    return paragraphs


def annotate_structured(data: Any, extractor: Optional[CitationExtractor] = None) -> Any:
    """
    Annotate every citation-bearing string inside a JSON-like answer.

    Strings that contain a citation are replaced by their serialized segment
    list; every other value (including citation-free strings) is returned as is.
    """
    extractor = extractor or DEFAULT_EXTRACTOR

    if isinstance(data, str):
        if not extractor.contains(data):
            return data
        return segments_to_dicts(annotate(data, extractor.extract(data)))
    if isinstance(data, dict):
        return {key: annotate_structured(value, extractor) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [annotate_structured(item, extractor) for item in data]
    return data


# ============================================================================
# SERIALIZATION HELPERS
# ============================================================================

def join_segments(segments: Iterable[Segment]) -> str:
    """Concatenate segment texts (the inverse of annotate)."""
    return ''.join(segment.text for segment in segments)


def segments_to_dicts(segments: Iterable[Segment]) -> List[Dict[str, Any]]:
    return [segment.to_dict() for segment in segments]


def citation_segments(segments: Iterable[Segment]) -> List[CitationSegment]:
    return [s for s in segments if isinstance(s, CitationSegment)]
