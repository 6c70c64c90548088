#!/usr/bin/env python3
"""
Tests for the citation annotator.

Covers:
- Reconstruction: segment texts always concatenate back to the input
- No-citation identity
- Longest-match precedence for citations sharing a prefix
- Word-boundary safety
- Paragraph and structured (JSON) annotation
- Segment serialization
"""

import sys
import os
import unittest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from citation_extractor import Citation, CitationExtractor, extract_citations
from annotator import (
    CitationSegment,
    Occurrence,
    PlainSegment,
    annotate,
    annotate_paragraphs,
    annotate_structured,
    annotate_text,
    citation_segments,
    coalesce_segments,
    find_occurrences,
    join_segments,
    segments_to_dicts,
)


SAMPLE_TEXTS = [
    "",
    " ",
    "Grace and peace to you.",
    "See John 3:16 and also Romans 8:28, 38-39 for comfort.",
    "1 Corinthians 13:4-7 describes love.",
    "Revelation 21:3-4, 6-8 speaks of renewal.",
    "AJohn 3:16Z",
    "John 3:16John 3:16",
    "  John 3\tJohn 3:16\n\nJohn 3:16, 17 ",
    "## Heading\n\n- *Romans 5:8* and \"Acts 2:38\".\n",
    "Ünïcödé · Psalms 23 ✓",
]


# ============================================================================
# INVARIANTS
# ============================================================================

class TestReconstruction(unittest.TestCase):

    def test_reconstruction_with_extracted_citations(self):
        for text in SAMPLE_TEXTS:
            segments = annotate(text, extract_citations(text))
            self.assertEqual(join_segments(segments), text, f"failed for {text!r}")

    def test_reconstruction_with_arbitrary_citations(self):
        citations = ["John 3", "John 3:16", "3:16", "Romans", "e", " ", "John 3:16, 17"]
        for text in SAMPLE_TEXTS:
            segments = annotate(text, citations)
            self.assertEqual(join_segments(segments), text, f"failed for {text!r}")

    def test_segments_never_overlap(self):
        text = "John 3:16 and John 3 and John 3:16-18"
        occurrences = find_occurrences(text, ["John 3", "John 3:16", "John 3:16-18"])
        for a, b in zip(occurrences, occurrences[1:]):
            self.assertLessEqual(a.end, b.start)

    def test_no_citations_identity(self):
        for text in SAMPLE_TEXTS:
            self.assertEqual(annotate(text, []), [PlainSegment(text)])
            self.assertEqual(annotate(text, None), [PlainSegment(text)])

    def test_empty_string(self):
        """Scenario: empty input gives a single empty plain segment."""
        self.assertEqual(annotate("", extract_citations("")), [PlainSegment("")])

    def test_no_citation_text(self):
        """Scenario: text without citations is returned unchanged."""
        text = "Grace and peace to you."
        self.assertEqual(annotate_text(text), [PlainSegment(text)])

    def test_non_string_text(self):
        self.assertEqual(annotate(None, ["John 3:16"]), [PlainSegment("")])
        self.assertEqual(annotate(12, ["John 3:16"]), [PlainSegment("")])

    def test_citation_not_in_text(self):
        text = "Nothing here."
        self.assertEqual(annotate(text, ["John 3:16"]), [PlainSegment(text)])


# ============================================================================
# ANNOTATION BEHAVIOR
# ============================================================================

class TestAnnotate(unittest.TestCase):

    def test_sentence_with_continuations(self):
        """Scenario: plain/citation segments alternate and rebuild the sentence."""
        text = "See John 3:16 and also Romans 8:28, 38-39 for comfort."
        segments = annotate(text, extract_citations(text))
        self.assertEqual(segments, [
            PlainSegment("See "),
            CitationSegment("John 3:16", Citation("John 3:16")),
            PlainSegment(" and also "),
            CitationSegment("Romans 8:28", Citation("Romans 8:28")),
            PlainSegment(", 38-39 for comfort."),
        ])

    def test_citation_at_start_and_end(self):
        segments = annotate("John 3:16", ["John 3:16"])
        self.assertEqual(segments, [CitationSegment("John 3:16", Citation("John 3:16"))])

    def test_longest_match_wins(self):
        text = "Read John 3:16 today"
        segments = annotate(text, ["John 3", "John 3:16"])
        cited = citation_segments(segments)
        self.assertEqual(len(cited), 1)
        self.assertEqual(cited[0].citation, Citation("John 3:16"))

    def test_longest_match_wins_regardless_of_input_order(self):
        text = "Read John 3:16 today"
        self.assertEqual(annotate(text, ["John 3", "John 3:16"]),
                         annotate(text, ["John 3:16", "John 3"]))

    def test_shorter_citation_still_matches_elsewhere(self):
        text = "John 3:16 is in John 3."
        cited = [s.citation.text for s in citation_segments(annotate(text, ["John 3", "John 3:16"]))]
        self.assertEqual(cited, ["John 3:16", "John 3"])

    def test_word_boundary_safety(self):
        segments = annotate("AJohn 3:16Z", ["John 3:16"])
        self.assertEqual(citation_segments(segments), [])

    def test_allowed_leading_punctuation(self):
        for lead in ';:.,>"\'':
            text = f"x{lead}John 3:16"
            self.assertEqual(len(citation_segments(annotate(text, ["John 3:16"]))), 1, lead)

    def test_disallowed_leading_character(self):
        for lead in "(-_a1":
            text = f"x{lead}John 3:16"
            self.assertEqual(citation_segments(annotate(text, ["John 3:16"])), [], lead)

    def test_parenthesised_citation_extracted_but_not_marked(self):
        """An opening parenthesis is not a citation boundary, so the text stays plain."""
        text = "God is love (1 John 4:8)."
        citations = extract_citations(text)
        self.assertEqual(citations, [Citation("1 John 4:8")])
        self.assertEqual(annotate(text, citations), [PlainSegment(text)])

    def test_repeated_citation_each_occurrence(self):
        text = "John 3:16; John 3:16, John 3:16."
        self.assertEqual(len(citation_segments(annotate(text, ["John 3:16"]))), 3)

    def test_adjacent_without_separator(self):
        """Copies glued together have no word boundary between them."""
        cited = citation_segments(annotate("John 3:16John 3:16", ["John 3:16"]))
        self.assertEqual(cited, [])

    def test_plain_segments_are_coalesced(self):
        segments = annotate("a John 3:16 b", ["John 3:16", "Romans 1"])
        for a, b in zip(segments, segments[1:]):
            self.assertFalse(isinstance(a, PlainSegment) and isinstance(b, PlainSegment))

    def test_find_occurrences_positions(self):
        text = "See John 3:16."
        self.assertEqual(find_occurrences(text, [Citation("John 3:16")]),
                         [Occurrence(Citation("John 3:16"), 4, 13)])


# ============================================================================
# PARAGRAPHS AND STRUCTURED ANSWERS
# ============================================================================

class TestParagraphs(unittest.TestCase):

    def test_paragraphs_reconstruct(self):
        text = "## Love\n\n1 Corinthians 13:4-7 describes love.\n\n\nSee also 1 John 4:8."
        paragraphs = annotate_paragraphs(text)
        self.assertEqual(len(paragraphs), 3)
        self.assertEqual(''.join(join_segments(p) for p in paragraphs), text)

    def test_each_paragraph_annotated(self):
        paragraphs = annotate_paragraphs("John 3:16\n\nRomans 8:28")
        self.assertEqual([[s.citation.text for s in citation_segments(p)] for p in paragraphs],
                         [["John 3:16"], ["Romans 8:28"]])

    def test_empty_text(self):
        self.assertEqual(annotate_paragraphs(""), [[PlainSegment("")]])


class TestStructured(unittest.TestCase):

    def test_strings_with_citations_become_segments(self):
        data = {
            "name": "Ruth",
            "events": [
                {"description": "Gleans in the field", "reference": "Ruth 2:2-3"},
            ],
            "count": 4,
            "notes": None,
        }
        result = annotate_structured(data)
        self.assertEqual(result["name"], "Ruth")
        self.assertEqual(result["count"], 4)
        self.assertIsNone(result["notes"])
        self.assertEqual(result["events"][0]["description"], "Gleans in the field")
        self.assertEqual(result["events"][0]["reference"], [
            {"type": "citation", "text": "Ruth 2:2-3", "citation": "Ruth 2:2-3"},
        ])

    def test_generic_extractor_used_when_given(self):
        result = annotate_structured(["New York 5"], CitationExtractor(known_books=False))
        self.assertEqual(result[0][0]["type"], "citation")


# ============================================================================
# HELPERS
# ============================================================================

class TestHelpers(unittest.TestCase):

    def test_segments_to_dicts(self):
        segments = [PlainSegment("See "), CitationSegment("John 3:16", Citation("John 3:16"))]
        self.assertEqual(segments_to_dicts(segments), [
            {"type": "plain", "text": "See "},
            {"type": "citation", "text": "John 3:16", "citation": "John 3:16"},
        ])

    def test_coalesce_segments(self):
        merged = coalesce_segments([PlainSegment("a"), PlainSegment("b"),
                                    CitationSegment("John 1", Citation("John 1")), PlainSegment("c")])
        self.assertEqual(merged, [PlainSegment("ab"), CitationSegment("John 1", Citation("John 1")),
                                  PlainSegment("c")])


if __name__ == '__main__':
    unittest.main()
