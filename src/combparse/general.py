"""
General purpose parsers.

All of them are parser factories. The returned parsers never touch `ParseData.checkpoints`,
and leave the cursor where it was when they fail.
"""

from __future__ import annotations
from typing import Any

import logging

import combparse.const as const
from combparse.main import (
    ConfigError,
    ParseData,
    Parser,
    Semantics,
    handle_semantics,
)


logger = logging.getLogger(__name__)


# numbers and identifiers

def natural(radix: int = 10, *, semantics: Semantics | None = None) -> Parser:
    """
    Natural number in the given radix. Digits above 9 are letters, in any case.

    The value of the result is the number as an `int`. Numbers above `const.MAX_NATURAL` don't match.
    """
    if not const.MIN_RADIX <= radix <= const.MAX_RADIX:
        raise ConfigError(f"The radix has to be between {const.MIN_RADIX} and {const.MAX_RADIX}, but is: {radix}")
    digits = frozenset(const.DIGITS[:radix])
    logger.debug("Natural number parser with radix %d.", radix)
    def parse_natural(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        content = pd.source.content
        start = end = pd.source.pos
        while end < len(content) and content[end].lower() in digits:
            end += 1
        if end <= start:
            pd.unmatched("natural number expected")
        elif (value := int(content[start:end], radix)) > const.MAX_NATURAL:
            pd.unmatched("natural number expected", cause=OverflowError(f"{content[start:end]} is out of range"))
        else:
            result = pd.matched(end - start)
            result.value = value
        return handle_semantics(semantics, pd, ctx)
    return parse_natural

def ident(first_chars: str = "", following_chars: str = "", *, semantics: Semantics | None = None) -> Parser:
    """
    Identifier. Starts with a letter, continues with letters and digits.

    `first_chars`: Other characters allowed as the first character. (e.g. `"_"`)
    `following_chars`: Other characters allowed after the first character.

    The value of the result is the identifier.
    """
    def parse_ident(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        content = pd.source.content
        start = end = pd.source.pos
        if end < len(content) and (content[end].isalpha() or content[end] in first_chars):
            end += 1
            while end < len(content) and (
                content[end].isalpha() or content[end].isdecimal() or content[end] in following_chars
            ):
                end += 1
        if end > start:
            result = pd.matched(end - start)
            result.value = result.text
        else:
            pd.unmatched("identifier expected")
        return handle_semantics(semantics, pd, ctx)
    return parse_ident


# whitespace and end of input

def space(eol_ok: bool = True, *, semantics: Semantics | None = None) -> Parser:
    """
    One or more whitespace characters.

    `eol_ok`: Whether newlines count as whitespace.
    """
    def parse_space(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        content = pd.source.content
        start = end = pd.source.pos
        while end < len(content) and content[end].isspace() and (eol_ok or content[end] != "\n"):
            end += 1
        if end > start:
            pd.matched(end - start)
        else:
            pd.unmatched("expecting white space")
        return handle_semantics(semantics, pd, ctx)
    return parse_space

def eof(*, semantics: Semantics | None = None) -> Parser:
    """Only matches at the end of the input. Never consumes anything."""
    def parse_eof(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        remaining = len(pd.source.content) - pd.source.pos
        if remaining > 0:
            pd.unmatched(f"expecting end of input but still got {remaining} characters")
        else:
            pd.matched(0)
        return handle_semantics(semantics, pd, ctx)
    return parse_eof


# comments

def line_comment(start: str, *, semantics: Semantics | None = None) -> Parser:
    """
    Comment from `start` (e.g. `//`) until the end of the line. The newline isn't included.

    The value of the result is an empty string.
    """
    if not start:
        raise ConfigError("Expected the start of a line comment, got an empty string.")
    logger.debug("Line comment parser starting with %r.", start)
    def parse_line_comment(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        content = pd.source.content
        pos = pd.source.pos
        if content.startswith(start, pos):
            newline = content.find("\n", pos + len(start))
            end = len(content) if newline < 0 else newline
            result = pd.matched(end - pos)
            result.value = ""
        else:
            pd.unmatched("expecting line comment")
        return handle_semantics(semantics, pd, ctx)
    return parse_line_comment

def _find_block_comment_end(content: str, pos: int, end: str) -> int:
    """
    Returns the position right after the first `end` after `pos`, or -1 if there is none.

    An `end` inside of a string literal doesn't count.
    """
    quote: str | None = None
    after_backslash = False
    for i in range(pos, len(content)):
        char = content[i]
        if after_backslash:
            after_backslash = False
        elif quote is not None:
            if char == "\\" and quote in const.ESCAPING_QUOTES:
                after_backslash = True
            elif char == quote:
                quote = None
        elif char in const.STRING_QUOTES:
            quote = char
        elif content.startswith(end, i):
            return i + len(end)
    return -1

def block_comment(start: str, end: str, *, semantics: Semantics | None = None) -> Parser:
    """
    Comment from `start` (e.g. `/*`) to `end` (e.g. `*/`).

    An `end` inside of a string literal (`'...'`, `"..."` or `` `...` ``) doesn't close the comment.

    The value of the result is an empty string.
    """
    if not start:
        raise ConfigError("Expected the start of a block comment, got an empty string.")
    if not end:
        raise ConfigError("Expected the end of a block comment, got an empty string.")
    logger.debug("Block comment parser for %r ... %r.", start, end)
    def parse_block_comment(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        content = pd.source.content
        pos = pd.source.pos
        if not content.startswith(start, pos):
            found = content[pos:pos+len(start)]
            pd.unmatched(f"expecting block comment starting with '{start}', got '{found}'")
        elif (comment_end := _find_block_comment_end(content, pos + len(start), end)) < 0:
            pd.unmatched(f"block comment isn't closed with '{end}'", len(start))
        else:
            result = pd.matched(comment_end - pos)
            result.value = ""
        return handle_semantics(semantics, pd, ctx)
    return parse_block_comment
