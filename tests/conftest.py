"""Shared test fixtures for combparse."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from combparse import FactoryParameter, ParseData, parse

LINES = "content\nline2\nline3\nand4\n"


@pytest.fixture
def run() -> Callable[..., ParseData]:
    """Runs a parser on some content, starting at `pos`, and returns the ParseData."""

    def _run(parser: FactoryParameter, content: str, pos: int = 0) -> ParseData:
        pd, _ = parse(parser, content, name="test", pos=pos)
        return pd

    return _run


@pytest.fixture
def lines_data() -> ParseData:
    """ParseData positioned in the third line, with a primed location cache."""
    pd = ParseData("file1", LINES)
    pd.source.pos = 15
    pd.source.cached_nl = 13
    pd.source.cached_line = 3
    return pd
