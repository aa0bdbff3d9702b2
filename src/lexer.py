"""Tokenization and pipeline splitting for tinysh.

``tokenize`` turns one command segment into words following POSIX-like
quoting rules; ``split_pipeline`` cuts a raw input line into the segments
separated by unquoted ``|``.
"""
from __future__ import annotations

from typing import List

from errors import PipelineTooShort, UnterminatedQuote

# Characters a backslash may escape inside double quotes. Any other
# backslash there is kept literally.
DOUBLE_QUOTE_ESCAPES = {'\\', '"', '$', '`', '\n'}


class Word(str):
    """A token: its text plus whether any part of it was quoted or escaped.

    Quoted words are never taken for operators, so ``echo '>' x`` prints
    ``> x`` instead of redirecting.
    """

    quoted: bool

    def __new__(cls, value: str, quoted: bool = False) -> "Word":
        obj = super().__new__(cls, value)
        obj.quoted = quoted
        return obj


def is_quoted(tok: str) -> bool:
    return getattr(tok, 'quoted', False)


def tokenize(line: str) -> List[Word]:
    """Split a command segment into words.

    Whitespace outside quotes separates words. Single quotes are fully
    literal, double quotes allow a handful of backslash escapes, and outside
    quotes a backslash escapes the next character. Adjacent runs with no
    whitespace between them join into one word. A run that ends up empty
    (``""`` on its own) yields no word.

    Raises UnterminatedQuote when a quote is left open.
    """
    tokens: List[Word] = []
    buf: List[str] = []
    quoted = False
    i = 0
    n = len(line)
    in_single = False
    in_double = False

    def flush_buf() -> None:
        nonlocal quoted
        if buf:
            tokens.append(Word(''.join(buf), quoted))
            buf.clear()
        quoted = False

    while i < n:
        ch = line[i]
        if in_single:
            if ch == "'":
                in_single = False
            else:
                buf.append(ch)
            i += 1
            continue
        if in_double:
            if ch == '"':
                in_double = False
                i += 1
                continue
            if ch == '\\' and i + 1 < n and line[i + 1] in DOUBLE_QUOTE_ESCAPES:
                buf.append(line[i + 1])
                i += 2
                continue
            buf.append(ch)
            i += 1
            continue

        if ch == "'":
            in_single = True
            quoted = True
            i += 1
            continue
        if ch == '"':
            in_double = True
            quoted = True
            i += 1
            continue
        if ch == '\\':
            if i + 1 < n:
                buf.append(line[i + 1])
                quoted = True
                i += 2
            else:
                # Trailing backslash has nothing to escape
                buf.append('\\')
                i += 1
            continue
        if ch.isspace():
            flush_buf()
            i += 1
            continue
        buf.append(ch)
        i += 1

    if in_single:
        raise UnterminatedQuote('single')
    if in_double:
        raise UnterminatedQuote('double')
    flush_buf()
    return tokens


def split_pipeline(line: str) -> List[str]:
    """Split a line on unquoted, unescaped ``|`` into trimmed segments.

    A line without such a pipe comes back as a single segment. When a pipe
    is present, every segment must hold something, otherwise
    PipelineTooShort is raised (``"a |"``, ``"| b"``, ``"a || b"``).
    """
    segments: List[str] = []
    start = 0
    i = 0
    n = len(line)
    in_single = False
    in_double = False
    while i < n:
        ch = line[i]
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == '\\' and not in_single:
            # Skip the escaped character
            i += 2
            continue
        elif ch == '|' and not in_single and not in_double:
            segments.append(line[start:i].strip())
            start = i + 1
        i += 1

    if not segments:
        return [line.strip()]
    segments.append(line[start:].strip())
    if any(not seg for seg in segments):
        raise PipelineTooShort()
    return segments
