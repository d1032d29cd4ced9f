import os
import sys
import re

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from parsers.text_reconstruction import (
    extract_section,
    is_heading,
    is_table_of_contents_line,
    normalize_text,
    reconstruct_lines,
    split_paragraphs,
    split_sentences,
)


def test_wrapped_line_joins_and_heading_opens_new_paragraph():
    paragraphs = split_paragraphs("Line one\nwraps here\nNEXT SECTION\nSingle fact.")

    assert len(paragraphs) == 2
    assert paragraphs[0] == "Line one wraps here"
    assert paragraphs[1].startswith("NEXT SECTION")
    assert "Single fact." in paragraphs[1]


def test_sentence_end_keeps_lines_apart():
    paragraphs = split_paragraphs("First sentence.\nsecond starts lower")
    assert paragraphs == ["First sentence.\nsecond starts lower"]


def test_table_of_contents_lines_are_dropped():
    text = "Contents\nRoof ........ 12\nDamp ........ 14"
    assert split_paragraphs(text) == ["Contents"]
    assert is_table_of_contents_line("Electrics ............ 21")
    assert not is_table_of_contents_line("Total cost 12")


def test_heading_detection():
    assert is_heading("3.1 Roof coverings")
    assert is_heading("RISKS TO OCCUPANTS")
    assert not is_heading("NOTES")
    assert not is_heading("Ordinary sentence")


def test_normalize_text_collapses_whitespace():
    assert normalize_text("a  \t b\r\n\n\n\nc ") == "a b\n\nc"


def test_reconstruct_lines_flattens_paragraphs():
    lines = reconstruct_lines("Replace the\nbroken tile\n\nVAT £20.00")
    assert lines == ["Replace the broken tile", "VAT £20.00"]


def test_split_sentences_treats_colon_as_boundary():
    sentences = split_sentences("Summary: We recommend repairs. Then monitor it.")
    assert sentences == ["Summary.", "We recommend repairs.", "Then monitor it."]
    assert split_sentences("   ") == []


def test_extract_section_stops_at_next_numbered_heading():
    paragraphs = split_paragraphs(
        "1.0 INTRODUCTION\nBackground.\n\n"
        "2.0 OVERALL SUMMARY\nBody kept.\n\n"
        "Second paragraph.\n\n"
        "3.0 GENERAL DESCRIPTION\nNot kept."
    )
    section = extract_section(paragraphs, re.compile(r'overall summary'), re.compile(r'general description'))
    assert section == ["Body kept.", "Second paragraph."]


def test_extract_section_missing_heading():
    assert extract_section(["Nothing here"], re.compile(r'overall summary'), re.compile(r'x')) == []
