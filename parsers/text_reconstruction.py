"""
Text Reconstruction - Rebuild paragraphs and sentences from raw PDF text

PDF text extraction flattens columns, tables and page breaks into one
stream of short lines. Every PDF-sourced extractor (statements, quotes,
surveys) runs that stream through here before pattern matching.
"""

import re
from typing import List, Optional, Pattern

HEADING_NUMBER = re.compile(r'^\d+\.\d+')
SENTENCE_END = re.compile(r'[.!?]$')
WRAPPED_LINE_START = re.compile(r'^[a-z(]')
SENTENCE_SPLIT = re.compile(r'(?<=[.!?])\s+(?=[A-Z])')

# All-caps lines at or under this length are not treated as headings
MIN_CAPS_HEADING_LENGTH = 6
TOC_MIN_DOTS = 8


def normalize_text(text: str) -> str:
    """Normalise line endings, collapse inline whitespace and blank-line runs."""
    text = (text or '').replace('\r\n', '\n').replace('\r', '\n')
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


def is_table_of_contents_line(line: str) -> bool:
    """Dot-leader line ending in a page number, e.g. 'Roof ........ 12'."""
    trimmed = line.strip()
    if not trimmed or not trimmed[-1].isdigit():
        return False
    return trimmed.count('.') >= TOC_MIN_DOTS


def is_heading(line: str) -> bool:
    """Numbered heading ('3.1 Roof') or an all-caps line longer than a short label."""
    if HEADING_NUMBER.match(line):
        return True
    return (
        line.upper() == line
        and len(line) > MIN_CAPS_HEADING_LENGTH
        and any(ch.isalpha() for ch in line)
    )


def split_paragraphs(text: str) -> List[str]:
    """
    Reconstruct paragraphs from raw extracted text.

    Headings always open a new paragraph. Other lines join the current
    paragraph with a space when the previous line looks like a mid-sentence
    wrap, otherwise with a newline. Table-of-contents lines are dropped.

    Args:
        text: Raw text as produced by a PDF decoder

    Returns:
        Ordered list of paragraphs
    """
    paragraphs = []
    current = []
    last_was_heading = False

    def flush():
        joined = ''.join(current).strip()
        if joined:
            paragraphs.append(joined)
        current.clear()

    for raw_line in normalize_text(text).split('\n'):
        line = raw_line.strip()
        if not line:
            flush()
            last_was_heading = False
            continue
        if is_table_of_contents_line(line):
            continue

        if is_heading(line):
            flush()
            current.append(line)
            last_was_heading = True
            continue

        if not current:
            current.append(line)
        else:
            previous = current[-1]
            wrapped = (
                not last_was_heading
                and not SENTENCE_END.search(previous)
                and WRAPPED_LINE_START.match(line)
            )
            current.append(' ' + line if wrapped else '\n' + line)
        last_was_heading = False

    flush()
    return paragraphs


def reconstruct_lines(text: str) -> List[str]:
    """Reconstructed paragraphs flattened back into single logical lines."""
    lines = []
    for paragraph in split_paragraphs(text):
        for line in paragraph.split('\n'):
            line = re.sub(r'\s+', ' ', line).strip()
            if line:
                lines.append(line)
    return lines


def split_sentences(paragraph: str) -> List[str]:
    """Split a paragraph into sentences; a colon also ends a sentence."""
    cleaned = re.sub(r'\s+', ' ', paragraph or '').strip()
    cleaned = re.sub(r':\s+', '. ', cleaned)
    if not cleaned:
        return []
    return [s.strip() for s in SENTENCE_SPLIT.split(cleaned) if s.strip()]


def extract_section(paragraphs: List[str], start: Pattern, end: Pattern,
                    max_paragraphs: int = 60) -> List[str]:
    """
    Collect the paragraphs that follow a section heading.

    The section opens at the first paragraph whose line matches ``start`` and
    closes at a paragraph matching ``end`` or at the next numbered heading.
    Body text that shares a paragraph with the opening heading is kept.
    """
    start_index: Optional[int] = None
    opening_body = ''
    for index, paragraph in enumerate(paragraphs):
        if is_table_of_contents_line(paragraph):
            continue
        lines = paragraph.split('\n')
        for line_index, line in enumerate(lines):
            if start.search(line.lower()):
                start_index = index
                opening_body = '\n'.join(lines[line_index + 1:]).strip()
                break
        if start_index is not None:
            break

    if start_index is None:
        return []

    section = [opening_body] if opening_body else []
    for paragraph in paragraphs[start_index + 1:]:
        if end.search(paragraph.lower()) or HEADING_NUMBER.match(paragraph):
            break
        section.append(paragraph)
        if len(section) >= max_paragraphs:
            break
    return section
