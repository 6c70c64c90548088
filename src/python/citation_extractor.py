#!/usr/bin/env python3
"""
Citation Extractor for AI Study Answers

Scans free-form answer text for scripture-style citations and returns them as
normalized citation strings:

    "See John 3:16 and Romans 8:28, 38-39"
        → ["John 3:16", "Romans 8:28", "Romans 8:38-39"]

Recognized shape:
    [1-3 ]Book Chapter[:Verse[-EndVerse]][, continuation]*

where each continuation is a bare verse ("38"), a verse range ("38-39") or a
chapter:verse group ("4:1-2") that inherits the book, and the chapter unless it
names a new one.

Numbers are opaque digit strings: nothing here checks them against a canon.
Every function in this module is total over its input; non-string or empty
input simply yields no citations.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

# ============================================================================
# BIBLE BOOK DATA
# ============================================================================

# Canonical book name → capitalized abbreviations recognized in answer text.
# Numbered books are listed by stem below and expanded with their prefixes.
BOOK_ABBREVIATIONS: Dict[str, List[str]] = {
    # Old Testament
    'Genesis': ['Gen'],
    'Exodus': ['Exod'],
    'Leviticus': ['Lev'],
    'Numbers': ['Num'],
    'Deuteronomy': ['Deut'],
    'Joshua': ['Josh'],
    'Judges': ['Judg'],
    'Ruth': [],
    'Ezra': [],
    'Nehemiah': ['Neh'],
    'Esther': ['Esth'],
    'Job': [],
    'Psalms': ['Psalm', 'Ps', 'Psa'],
    'Proverbs': ['Prov'],
    'Ecclesiastes': ['Eccl', 'Eccles'],
    'Song of Solomon': ['Song of Songs', 'Song'],
    'Isaiah': ['Isa'],
    'Jeremiah': ['Jer'],
    'Lamentations': ['Lam'],
    'Ezekiel': ['Ezek'],
    'Daniel': ['Dan'],
    'Hosea': ['Hos'],
    'Joel': [],
    'Amos': [],
    'Obadiah': ['Obad'],
    'Jonah': [],
    'Micah': ['Mic'],
    'Nahum': ['Nah'],
    'Habakkuk': ['Hab'],
    'Zephaniah': ['Zeph'],
    'Haggai': ['Hag'],
    'Zechariah': ['Zech'],
    'Malachi': ['Mal'],
    # New Testament
    'Matthew': ['Matt', 'Mt'],
    'Mark': ['Mk'],
    'Luke': ['Lk'],
    'John': ['Jn'],
    'Acts': [],
    'Romans': ['Rom'],
    'Galatians': ['Gal'],
    'Ephesians': ['Eph'],
    'Philippians': ['Phil'],
    'Colossians': ['Col'],
    'Titus': [],
    'Philemon': ['Phlm'],
    'Hebrews': ['Heb'],
    'James': ['Jas'],
    'Jude': [],
    'Revelation': ['Rev', 'Revelations'],
}

# Stem → (abbreviations, highest numeral prefix)
NUMBERED_BOOKS: Dict[str, tuple] = {
    'Samuel': (['Sam'], 2),
    'Kings': (['Kgs'], 2),
    'Chronicles': (['Chron', 'Chr'], 2),
    'Corinthians': (['Cor'], 2),
    'Thessalonians': (['Thess'], 2),
    'Timothy': (['Tim'], 2),
    'Peter': (['Pet'], 2),
    'John': (['Jn'], 3),
}

ORDINAL_WORDS = {'1': 'First', '2': 'Second', '3': 'Third'}


def _build_book_table() -> Dict[str, str]:
    """Build the alias → canonical book name table."""
    table: Dict[str, str] = {}
    for canonical, abbreviations in BOOK_ABBREVIATIONS.items():
        table[canonical] = canonical
        for abbr in abbreviations:
            table[abbr] = canonical
    for stem, (abbreviations, highest) in NUMBERED_BOOKS.items():
        for n in range(1, highest + 1):
            numeral = str(n)
            canonical = f"{numeral} {stem}"
            table[canonical] = canonical
            table[f"{ORDINAL_WORDS[numeral]} {stem}"] = canonical
            for abbr in abbreviations:
                table[f"{numeral} {abbr}"] = canonical
    return table


BIBLE_BOOKS: Dict[str, str] = _build_book_table()

# Longest first so "1 Corinthians" wins over "1 Cor" and "Song of Solomon" over "Song"
KNOWN_BOOK_PATTERN = '|'.join(
    re.escape(name) for name in sorted(BIBLE_BOOKS, key=len, reverse=True)
)

# Optional numeral, then one or two capitalized words
GENERIC_BOOK_PATTERN = r'(?:[1-3]\s)?[A-Z][A-Za-z]+(?:\s[A-Z][A-Za-z]+)?'

# A continuation item must not be the numeral of a following numbered book
# ("John 3:16, 2 Peter 1:3").
_CONTINUATION = r',\s*\d+(?::\d+)?(?:-\d+)?(?![\w:])(?!\s+[A-Z][A-Za-z]*\s+\d)'

_CONTINUATION_ITEM_RE = re.compile(r'(\d+)(?::(\d+))?(?:-(\d+))?')

# Parses a normalized citation back into its parts
CITATION_PARTS_RE = re.compile(r'^(.+?)\s+(\d+)(?::(\d+)(?:-(\d+))?)?$')


def _compile_citation_pattern(book_pattern: str) -> 're.Pattern':
    return re.compile(
        rf'(?<![A-Za-z0-9])(?P<book>{book_pattern})\s+(?P<chapter>\d+)'
        rf'(?::(?P<verse>\d+)(?:-(?P<end>\d+))?)?'
        rf'(?P<rest>(?:{_CONTINUATION})*)'
        rf'(?![\w:])'
    )


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class Citation:
    """A normalized citation string such as "John 3:16". Equal iff text is equal."""
    text: str

    def __str__(self) -> str:
        return self.text

    def to_dict(self) -> Dict[str, str]:
        return {'text': self.text}


@dataclass(frozen=True)
class CitationParts:
    """A citation split into book, chapter and verse digit strings."""
    book: str
    chapter: str
    verse_start: Optional[str] = None
    verse_end: Optional[str] = None

    def to_citation(self) -> Citation:
        return Citation(format_citation(self.book, self.chapter, self.verse_start, self.verse_end))


CitationLike = Union[Citation, str]


def as_citation(value: CitationLike) -> Citation:
    """Coerce a plain string into a Citation (Citations pass through)."""
    if isinstance(value, Citation):
        return value
    return Citation(str(value))


def format_citation(book: str, chapter: str, verse_start: Optional[str] = None,
                    verse_end: Optional[str] = None) -> str:
    """Build the normalized citation string for the given parts."""
    if verse_start is None:
        return f"{book} {chapter}"
    if verse_end is None:
        return f"{book} {chapter}:{verse_start}"
    return f"{book} {chapter}:{verse_start}-{verse_end}"


def parse_citation(text: str) -> Optional[CitationParts]:
    """
    Split a normalized citation into its parts.

    Returns:
        CitationParts, or None when the text is not citation-shaped
    """
    if not isinstance(text, str):
        return None
    match = CITATION_PARTS_RE.match(text.strip())
    if not match:
        return None
    return CitationParts(
        book=match.group(1),
        chapter=match.group(2),
        verse_start=match.group(3),
        verse_end=match.group(4),
    )


def normalize_book_name(name: str) -> Optional[str]:
    """Map a recognized book name or abbreviation to its canonical form."""
    if not isinstance(name, str):
        return None
    return BIBLE_BOOKS.get(' '.join(name.split()))


# ============================================================================
# EXTRACTION
# ============================================================================

class CitationExtractor:
    """Detects citations in text.

    With ``known_books=True`` (the default) the book slot only accepts names and
    common abbreviations from BIBLE_BOOKS, so an ordinary capitalized word in
    front of a book ("See John 3:16") is never absorbed into the citation. With
    ``known_books=False`` any one or two capitalized words are accepted as a book.
    """

    def __init__(self, known_books: bool = True):
        self.known_books = known_books
        self.pattern = _compile_citation_pattern(
            KNOWN_BOOK_PATTERN if known_books else GENERIC_BOOK_PATTERN
        )

    def _expand(self, match: 're.Match') -> List[str]:
        book = ' '.join(match.group('book').split())
        chapter = match.group('chapter')
        results = [format_citation(book, chapter, match.group('verse'), match.group('end'))]

        rest = match.group('rest')
        if not rest:
            return results

        for part in rest.split(',')[1:]:
            item = _CONTINUATION_ITEM_RE.match(part.strip())
            if not item:
                continue
            first, second, end = item.groups()
            if second is not None:
                # chapter:verse[-end] establishes a new chapter
                chapter = first
                results.append(format_citation(book, chapter, second, end))
            else:
                results.append(format_citation(book, chapter, first, end))
        return results

    def extract(self, text) -> List[Citation]:
        """Return the de-duplicated citations in text, in order of first appearance."""
        if not isinstance(text, str) or not text:
            return []

        seen: Dict[str, Citation] = {}
        for match in self.pattern.finditer(text):
            for citation_text in self._expand(match):
                if citation_text not in seen:
                    seen[citation_text] = Citation(citation_text)
        return list(seen.values())

    def contains(self, text) -> bool:
        """True iff extract(text) would return at least one citation."""
        if not isinstance(text, str) or not text:
            return False
        return self.pattern.search(text) is not None


DEFAULT_EXTRACTOR = CitationExtractor()


def extract_citations(text, extractor: Optional[CitationExtractor] = None) -> List[Citation]:
    """
    Extract normalized citations from text.

    Args:
        text: Any value; only non-empty strings can contain citations
        extractor: Optional extractor (defaults to known-book recognition)

    Returns:
        De-duplicated list of Citation objects
    """
    return (extractor or DEFAULT_EXTRACTOR).extract(text)


def contains_citation(text, extractor: Optional[CitationExtractor] = None) -> bool:
    """Check whether text contains at least one citation."""
    return (extractor or DEFAULT_EXTRACTOR).contains(text)


def citation_texts(citations: Iterable[CitationLike]) -> List[str]:
    """Plain strings for a sequence of citations (for JSON output)."""
    return [as_citation(c).text for c in citations]
