"""Tests for the combinators."""

from __future__ import annotations

import re
from collections.abc import Callable

import pytest

from combparse import (
    NO_VALUE,
    ConfigError,
    ParseData,
    best,
    literal,
    oneof,
    optional,
    regex,
    repeat,
    repeat0,
    repeat1,
    seq,
)

Run = Callable[..., ParseData]


def error_count(pd: ParseData) -> int:
    return sum(1 for item in pd.current_result().feedback if item.is_error())


def assert_result(pd: ParseData, pos: int, text: str, value: object, err_pos: int, src_pos: int, errors: int) -> None:
    result = pd.current_result()
    assert result.pos == pos
    assert result.text == text
    assert result.value == value
    assert result.err_pos == err_pos
    assert pd.source.pos == src_pos
    assert error_count(pd) == errors


class TestLiteral:
    def test_match(self, run: Run) -> None:
        assert_result(run("flow", "flowflow"), 0, "flow", "flow", -1, 4, 0)

    def test_no_match(self, run: Run) -> None:
        pd = run("flow", " flow")
        assert_result(pd, 0, "", NO_VALUE, 0, 0, 1)
        assert "literal 'flow' expected" in str(pd.current_result().feedback[0])

    def test_empty_literal(self) -> None:
        with pytest.raises(ConfigError):
            literal("")


class TestOptional:
    @pytest.mark.parametrize(
        "content, text, value, src_pos",
        [
            (" flow", "", NO_VALUE, 0),
            ("flow", "flow", "flow", 4),
            ("flowflow", "flow", "flow", 4),
        ],
    )
    def test_optional(self, run: Run, content: str, text: str, value: object, src_pos: int) -> None:
        pd = run(optional("flow"), content)
        assert_result(pd, 0, text, value, -1, src_pos, 0)

    def test_failure_is_discarded(self, run: Run) -> None:
        pd = run(optional(seq("flow", "no")), "123flowyes", 3)
        assert_result(pd, 3, "", NO_VALUE, -1, 3, 0)
        assert pd.current_result().feedback == []


class TestRepeat:
    @pytest.mark.parametrize(
        "content, text, value, src_pos",
        [
            (" flow", "", [], 0),
            ("flow", "flow", ["flow"], 4),
            ("flowflow", "flowflow", ["flow", "flow"], 8),
        ],
    )
    def test_repeat0(self, run: Run, content: str, text: str, value: object, src_pos: int) -> None:
        assert_result(run(repeat0("flow"), content), 0, text, value, -1, src_pos, 0)

    def test_repeat1_no_match(self, run: Run) -> None:
        assert_result(run(repeat1("flow"), " flow"), 0, "", NO_VALUE, 0, 0, 2)

    @pytest.mark.parametrize(
        "content, text, value, src_pos",
        [
            ("flow", "flow", ["flow"], 4),
            ("flowflow", "flowflow", ["flow", "flow"], 8),
        ],
    )
    def test_repeat1(self, run: Run, content: str, text: str, value: object, src_pos: int) -> None:
        assert_result(run(repeat1("flow"), content), 0, text, value, -1, src_pos, 0)

    def test_too_few_matches(self, run: Run) -> None:
        pd = run(repeat("flow", 2, 3), "flow flow")
        assert_result(pd, 0, "", NO_VALUE, 4, 0, 2)
        messages = [str(item) for item in pd.current_result().feedback]
        assert sum(1 for msg in messages if "at least 2" in msg) == 1
        assert "at least 2 matches expected but got only 1" in messages[0]
        assert "column 5" in messages[0]
        assert "literal 'flow' expected" in messages[1]

    @pytest.mark.parametrize(
        "content, count",
        [
            ("flowflow", 2),
            ("flowflowflow", 3),
            ("flowflowflowflow", 3),
        ],
    )
    def test_bounded(self, run: Run, content: str, count: int) -> None:
        pd = run(repeat("flow", 2, 3), content)
        assert_result(pd, 0, "flow" * count, ["flow"] * count, -1, 4 * count, 0)

    def test_nested(self, run: Run) -> None:
        pd = run(repeat1(repeat("flow", 2, 3)), "flow" * 7)
        assert_result(pd, 0, "flow" * 6, [["flow"] * 3, ["flow"] * 3], -1, 24, 0)

    def test_single_value_is_unwrapped(self, run: Run) -> None:
        assert_result(run(repeat("flow", 0, 1), "flowflow"), 0, "flow", "flow", -1, 4, 0)
        assert_result(run(repeat("flow", 0, 1), "nope"), 0, "", NO_VALUE, -1, 0, 0)

    def test_max_count_bounds_empty_matches(self, run: Run) -> None:
        pd = run(repeat(optional("x"), 0, 3), "abc")
        assert_result(pd, 0, "", [NO_VALUE] * 3, -1, 0, 0)

    def test_starts_at_cursor(self, run: Run) -> None:
        assert_result(run(repeat1("ab"), "xxababx", 2), 2, "abab", ["ab", "ab"], -1, 6, 0)

    @pytest.mark.parametrize("min_count, max_count", [(-1, None), (3, 2)])
    def test_invalid_counts(self, min_count: int, max_count: int | None) -> None:
        with pytest.raises(ConfigError):
            repeat("flow", min_count, max_count)


class TestSeq:
    @pytest.mark.parametrize(
        "name, content, pos, expected",
        [
            ("empty", "", 0, (0, "", NO_VALUE, 0, 0, 1)),
            ("no match", " flow no", 0, (0, "", NO_VALUE, 0, 0, 1)),
            ("match flow", "flowabc", 0, (0, "", NO_VALUE, 4, 0, 1)),
            ("match no", "123noabc", 3, (3, "", NO_VALUE, 3, 3, 1)),
            ("match all", "123flownoabc", 3, (3, "flowno", ["flow", "no"], -1, 9, 0)),
        ],
    )
    def test_seq(self, run: Run, name: str, content: str, pos: int, expected: tuple) -> None:
        assert_result(run(seq("flow", "no"), content, pos), *expected)

    def test_failure_reports_failing_child_only(self, run: Run) -> None:
        pd = run(seq("flow", "no"), "123flowyes", 3)
        result = pd.current_result()
        assert result.pos == 3
        assert result.err_pos == 7
        assert len(result.feedback) == 1
        assert "literal 'no' expected" in str(result.feedback[0])

    def test_many(self, run: Run) -> None:
        pd = run(seq(*"123456789"), "1234567890")
        assert_result(pd, 0, "123456789", list("123456789"), -1, 9, 0)

    def test_nested(self, run: Run) -> None:
        pd = run(seq("fun", seq("flow", "no")), "123funflownoabc", 3)
        assert_result(pd, 3, "funflowno", ["fun", ["flow", "no"]], -1, 12, 0)

    def test_pattern_parameter(self, run: Run) -> None:
        pd = run(seq(re.compile(r"\d+"), "x"), "12x")
        assert_result(pd, 0, "12x", ["12", "x"], -1, 3, 0)

    def test_no_parsers(self) -> None:
        with pytest.raises(ConfigError):
            seq()


class TestOneof:
    @pytest.mark.parametrize(
        "name, content, pos, expected",
        [
            ("empty", "", 0, (0, "", NO_VALUE, 0, 0, 3)),
            ("no match", " flow 3", 0, (0, "", NO_VALUE, 0, 0, 3)),
            ("match flow", "flowabc", 0, (0, "flow", "flow", -1, 4, 0)),
            ("match no", "12noabc", 2, (2, "no", "no", -1, 4, 0)),
            ("match both", "123flownoabc", 3, (3, "flow", "flow", -1, 7, 0)),
        ],
    )
    def test_oneof(self, run: Run, name: str, content: str, pos: int, expected: tuple) -> None:
        assert_result(run(oneof("flow", "no"), content, pos), *expected)

    def test_failure_merges_all_feedback(self, run: Run) -> None:
        pd = run(oneof("flow", "no"), "abc yes", 4)
        messages = [str(item) for item in pd.current_result().feedback]
        assert pd.current_result().err_pos == 4
        assert "any subparser should match; all 2 failed" in messages[0]
        assert "literal 'flow' expected" in messages[1]
        assert "literal 'no' expected" in messages[2]

    @pytest.mark.parametrize(
        "content, text, src_pos",
        [
            ("123flowabc", "flow", 7),
            ("123funabc", "fun", 6),
            ("123noabc", "no", 5),
        ],
    )
    def test_nested(self, run: Run, content: str, text: str, src_pos: int) -> None:
        pd = run(oneof("fun", oneof("flow", "no")), content, 3)
        assert_result(pd, 3, text, text, -1, src_pos, 0)

    def test_resets_cursor_between_attempts(self, run: Run) -> None:
        pd = run(oneof(seq("flow", "no"), seq("flow", "yes")), "flowyes")
        assert_result(pd, 0, "flowyes", ["flow", "yes"], -1, 7, 0)

    def test_no_parsers(self) -> None:
        with pytest.raises(ConfigError):
            oneof()


class TestBest:
    @pytest.mark.parametrize(
        "name, content, pos, expected",
        [
            ("empty", "", 0, (0, "", NO_VALUE, 0, 0, 3)),
            ("no match", " flow 3", 0, (0, "", NO_VALUE, 0, 0, 3)),
            ("match flo", "12floabc", 2, (2, "flo", "flo", -1, 5, 0)),
            ("match flow", "flowabc", 0, (0, "flow", "flow", -1, 4, 0)),
        ],
    )
    def test_best(self, run: Run, name: str, content: str, pos: int, expected: tuple) -> None:
        assert_result(run(best("flo", "flow"), content, pos), *expected)

    def test_failure_message(self, run: Run) -> None:
        pd = run(best("flo", "flow"), "abc")
        assert "best subparser should match; all 2 failed" in str(pd.current_result().feedback[0])

    @pytest.mark.parametrize(
        "content, text, src_pos",
        [
            ("123flowabc", "flow", 7),
            ("123floabc", "flo", 6),
            ("123flabc", "fl", 5),
        ],
    )
    def test_nested(self, run: Run, content: str, text: str, src_pos: int) -> None:
        pd = run(best("fl", best("flo", "flow")), content, 3)
        assert_result(pd, 3, text, text, -1, src_pos, 0)

    def test_first_wins_on_tie(self, run: Run) -> None:
        pd = run(best(seq("fl", "o"), "flo", regex("f.o")), "flow")
        assert_result(pd, 0, "flo", ["fl", "o"], -1, 3, 0)

    def test_longer_later_match_wins(self, run: Run) -> None:
        pd = run(best("f", seq("fl", "o"), "flow", "flo"), "flowers")
        assert_result(pd, 0, "flow", "flow", -1, 4, 0)

    def test_empty_match_at_start(self, run: Run) -> None:
        assert_result(run(best(optional("x")), "abc"), 0, "", NO_VALUE, -1, 0, 0)

    def test_no_parsers(self) -> None:
        with pytest.raises(ConfigError):
            best()


def parsers_and_inputs() -> list[tuple[str, object, str, int]]:
    parsers = {
        "literal": literal("flow"),
        "optional": optional("flow"),
        "repeat": repeat("flow", 2, 3),
        "seq": seq("flow", "no"),
        "oneof": oneof("flow", "no"),
        "best": best("flo", "flow"),
        "nested": seq(optional(oneof("x", "y")), repeat1(best("flo", seq("flow", "no"))), oneof("!", "?")),
    }
    contents = ["", "flow", "flowno", "flowflowflow", "xflownoflo!", "yflo?", "123flownoabc", "flo flow"]
    return [
        (name, parser, content, pos)
        for name, parser in parsers.items()
        for content in contents
        for pos in range(len(content) + 1)
    ]


class TestInvariants:
    @pytest.mark.parametrize("name, parser, content, pos", parsers_and_inputs())
    def test_invariants(self, run: Run, name: str, parser: object, content: str, pos: int) -> None:
        pd = run(parser, content, pos)
        result = pd.current_result()
        assert result.has_error() == (result.err_pos >= 0)
        assert result.pos == pos
        assert pd.checkpoints == []
        if result.has_error():
            assert pd.source.pos == pos
            assert result.text == ""
            assert error_count(pd) >= 1
        else:
            assert result.err_pos == -1
            assert result.text == content[pos:pos + len(result.text)]
            assert pd.source.pos == pos + len(result.text)
