"""
The implementations of the main classes.
"""

from __future__ import annotations
from typing import Any, Final, Literal, NamedTuple, Protocol
from types import TracebackType

import enum
import logging
import re

import combparse.const as const


logger = logging.getLogger(__name__)


class NoValue(enum.Enum):
    """
    The type of `NO_VALUE`.

    Used instead of `None` so that `None` stays usable as a semantic value.
    """
    NO_VALUE = enum.auto()

    def __bool__(self) -> Literal[False]:
        return False

    def __repr__(self) -> str:
        return "NO_VALUE"

NO_VALUE: Final = NoValue.NO_VALUE
"""The value of a result that no parser or semantic hook has set a value for."""


class ConfigError(ValueError):
    """
    Raised when a parser is constructed with an invalid configuration.

    Never raised while parsing.
    """


class Location(NamedTuple):
    """A resolved source position."""
    line: int
    """1-based line number."""
    column: int
    """1-based column number."""
    line_text: str
    """The text of the line, without the line terminator."""


class SourceData:
    """
    The text that's being parsed, its name and the cursor.

    Also resolves positions into lines and columns. The line of the most
    recently resolved position is cached (`cached_nl`, `cached_line`), so
    resolving positions that are close to each other is cheap.
    """

    def __init__(self, name: str, content: str) -> None:
        self.name: Final[str] = name
        """Used for diagnostics."""
        self.content: Final[str] = content
        """The string that's being parsed."""
        self.pos: int = 0
        """The cursor."""
        self.cached_nl: int = -1
        """Position of the newline before the last resolved line. -1 for the first line."""
        self.cached_line: int = 1
        """1-based number of the last resolved line."""

    def __len__(self) -> int:
        return len(self.content)

    def __getitem__(self, key: int | slice) -> str:
        return self.content[key]

    def locate(self, pos: int) -> Location:
        """
        Resolves a position into a `Location`.

        Works for any order of positions. Positions outside of the content are clamped.
        """
        if not self.content:
            return Location(1, 1, "")
        pos = max(0, min(pos, len(self.content)))
        if pos > self.cached_nl:
            return self._locate_forward(pos)
        elif pos <= self.cached_nl - pos:
            # closer to the start than to the cached line
            self.cached_nl = -1
            self.cached_line = 1
            return self._locate_forward(pos)
        else:
            return self._locate_backward(pos)

    def _locate_forward(self, pos: int) -> Location:
        line = self.cached_line
        prev_nl = self.cached_nl
        while True:
            next_nl = self.content.find("\n", prev_nl + 1)
            if next_nl < 0:
                next_nl = len(self.content)
            if (location := self._try_line(prev_nl, pos, next_nl, line)) is not None:
                return location
            prev_nl = next_nl
            line += 1

    def _locate_backward(self, pos: int) -> Location:
        line = self.cached_line
        next_nl = self.cached_nl
        while True:
            prev_nl = self.content.rfind("\n", 0, next_nl)
            line -= 1
            if (location := self._try_line(prev_nl, pos, next_nl, line)) is not None:
                return location
            next_nl = prev_nl

    def _try_line(self, prev_nl: int, pos: int, next_nl: int, line: int) -> Location | None:
        if prev_nl < pos <= next_nl:
            self.cached_nl = prev_nl
            self.cached_line = line
            return Location(line, pos - prev_nl, self.content[prev_nl+1:next_nl])
        return None

    def where(self, pos: int) -> str:
        """
        Describes the position in a human-readable way.

        The returned string ends with a newline so messages can be appended directly.
        """
        location = self.locate(pos)
        return f"File '{self.name}', line {location.line}, column {location.column}:\n{location.line_text}\n"


class FeedbackKind(enum.Enum):
    INFO = const.FEEDBACK_INFO
    WARNING = const.FEEDBACK_WARNING
    PROBLEM = const.FEEDBACK_PROBLEM
    """A potential problem."""
    ERROR = const.FEEDBACK_ERROR


class ParseMessage:
    """Informational message with the location it refers to."""

    def __init__(self, where: str, msg: str) -> None:
        self.where: str = where
        self.msg: str = msg

    def __str__(self) -> str:
        return f"{self.where}{self.msg}."


class ParseError(Exception):
    """
    A syntactic or semantic error with the location it refers to.

    Parsers don't raise these. They are stored in the feedback of a `ParseResult`.

    `cause` is the lower-level exception that caused this error, if any.
    """

    def __init__(self, where: str, msg: str, cause: BaseException | None = None) -> None:
        super().__init__(msg)
        self.where: str = where
        self.msg: str = msg
        self.__cause__ = cause

    def __str__(self) -> str:
        if self.__cause__ is None:
            return f"{self.where}{self.msg}."
        return f"{self.where}{self.msg}: {self.__cause__}."


class FeedbackItem:
    """One item of feedback."""

    def __init__(self, kind: FeedbackKind, msg: ParseMessage | ParseError) -> None:
        self.kind: Final[FeedbackKind] = kind
        self.msg: Final[ParseMessage | ParseError] = msg

    def is_error(self) -> bool:
        return self.kind is FeedbackKind.ERROR

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.msg}"

    def __repr__(self) -> str:
        return f"<{self.kind.name} {str(self.msg)!r}>"


class FeedbackError(Exception):
    """
    All the errors of a parse, combined.

    Returned from `ParseData.get_feedback()`. The individual items are in `errors`.
    """

    def __init__(self, errors: list[FeedbackItem]) -> None:
        super().__init__("\n".join(str(item) for item in errors))
        self.errors: list[FeedbackItem] = errors


class ParseResult:
    """
    The result of a single parser call.

    Truthy if the parser matched, falsy if it didn't:
    ```
    pd, ctx = parser(pd, ctx)
    if pd.result:
        ... # matched, `pd.result.value` is the semantic value
    else:
        ... # failed at `pd.result.err_pos`
    ```

    Create using `ParseData.matched()` or `ParseData.unmatched()`.
    """

    def __init__(
        self,
        pos: int,
        text: str = "",
        value: Any = NO_VALUE,
        err_pos: int = -1,
        feedback: list[FeedbackItem] | None = None,
    ) -> None:
        self.pos: int = pos
        """The position where the parser started."""
        self.text: str = text
        """The matched text. Empty if the parser failed."""
        self.value: Any = value
        """The semantic value. `NO_VALUE` unless set."""
        self.err_pos: int = err_pos
        """-1 if the parser matched, the position of the failure otherwise."""
        self.feedback: list[FeedbackItem] = [] if feedback is None else feedback

    def has_error(self) -> bool:
        return self.err_pos >= 0

    def __bool__(self) -> bool:
        return self.err_pos < 0

    def __repr__(self) -> str:
        if self.err_pos >= 0:
            return f"<ParseResult {self.pos} failed at {self.err_pos}>"
        return f"<ParseResult {self.pos}..{self.pos + len(self.text)} {self.text!r} {{{self.value!r}}}>"


class Checkpoint:
    """
    Scratch data of a single combinator call: the starting position and the
    results of the subparsers collected so far.

    Used as a context manager:
    ```
    with pd.checkpoint() as ckpt:
        ...
    ```

    Pushed onto `ParseData.checkpoints` when entered, popped when exited.
    If an exception passes through, the cursor is rolled back to the saved position.
    """

    def __init__(self, pd: ParseData) -> None:
        """
        Create using `ParseData.checkpoint()` instead.
        """
        self.pos: Final[int] = pd.source.pos
        """The saved position."""
        self.pd: Final[ParseData] = pd
        """The bound ParseData."""
        self.sub_results: list[ParseResult] = []
        """Results of the subparsers."""

    def rollback(self) -> None:
        """Rolls back the cursor to the saved position."""
        self.pd.source.pos = self.pos

    def relative_pos(self) -> int:
        """How far the cursor moved since the checkpoint was created."""
        return self.pd.source.pos - self.pos

    def get_range(self) -> tuple[int, int]:
        return (self.pos, self.pd.source.pos)

    def __enter__(self) -> Checkpoint:
        self.pd.checkpoints.append(self)
        return self

    def __exit__(
        self,
        exctype: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        popped = self.pd.checkpoints.pop()
        assert popped is self, "Checkpoints have to be exited in reverse order."
        if exc is not None:
            self.rollback()
        return False


class ParseData:
    """
    Everything needed during a single parse.

    ```
    pd = ParseData("example.txt", "flowflow")
    pd, ctx = parser(pd, None)
    info, err = pd.get_feedback()
    ```

    Not thread safe. Use one per parse.
    """

    def __init__(self, name: str, content: str) -> None:
        self.source: Final[SourceData] = SourceData(name, content)
        self.result: ParseResult | None = None
        """The result of the most recent parser call."""
        self.sub_results: list[ParseResult] = []
        """The subresults of the combinator that just finished. Only valid inside of semantic hooks."""
        self.checkpoints: list[Checkpoint] = []
        """The scratch data of all currently running combinators. The innermost one is last."""

    def checkpoint(self) -> Checkpoint:
        """Creates a `Checkpoint` at the current position. Use it as a context manager."""
        return Checkpoint(self)

    def current_result(self) -> ParseResult:
        """`result`, for when a parser has already been called."""
        assert self.result is not None, "No parser has been called yet."
        return self.result

    def matched(self, n: int) -> ParseResult:
        """
        Creates a successful result matching the next `n` characters and advances the cursor past them.

        Returns the new result, which is also stored in `result`.
        """
        start = self.source.pos
        end = start + n
        self.result = ParseResult(start, self.source.content[start:end])
        self.source.pos = end
        return self.result

    def unmatched(self, msg: str, offset: int = 0, cause: BaseException | None = None) -> ParseResult:
        """
        Creates a failed result without moving the cursor.

        The failure is positioned `offset` characters after the cursor.
        `cause` is an optional lower-level exception to add to the message.

        Returns the new result, which is also stored in `result`.
        """
        start = self.source.pos
        self.result = ParseResult(start, err_pos=start + offset)
        self.add_error(start + offset, msg, cause)
        return self.result

    def add_info(self, pos: int, msg: str) -> None:
        """Adds an information to the feedback of the current result."""
        self.current_result().feedback.append(FeedbackItem(FeedbackKind.INFO, ParseMessage(self.source.where(pos), msg)))

    def add_warning(self, pos: int, msg: str) -> None:
        """Adds a warning to the feedback of the current result."""
        self.current_result().feedback.append(FeedbackItem(FeedbackKind.WARNING, ParseMessage(self.source.where(pos), msg)))

    def add_problem(self, pos: int, msg: str) -> None:
        """Adds a potential problem to the feedback of the current result."""
        self.current_result().feedback.append(FeedbackItem(FeedbackKind.PROBLEM, ParseMessage(self.source.where(pos), msg)))

    def add_error(self, pos: int, msg: str, cause: BaseException | None = None) -> None:
        """
        Adds an error to the feedback of the current result.

        Doesn't change `err_pos`. Use `reject()` to turn a successful result into a failure.
        """
        self.current_result().feedback.append(FeedbackItem(FeedbackKind.ERROR, ParseError(self.source.where(pos), msg, cause)))

    def reset_source_pos(self, pos: int = -1) -> None:
        """
        Moves the cursor back to an old position.

        If `pos` is negative, the position of the current result is used.
        Usually needed when semantic errors occur.
        """
        self.source.pos = self.current_result().pos if pos < 0 else pos

    def reject(self, msg: str, pos: int = -1, cause: BaseException | None = None) -> None:
        """
        For semantic hooks: turns the current successful result into a failure.

        The failure is positioned at `pos`. If `pos` is negative, the position of the current result is used.
        The cursor is always moved back to the position of the current result.
        """
        result = self.current_result()
        if pos < 0:
            pos = result.pos
        result.err_pos = pos
        result.text = ""
        self.add_error(pos, msg, cause)
        self.source.pos = result.pos

    def get_feedback(self) -> tuple[str, FeedbackError | None]:
        """
        Splits the feedback of the current result.

        Returns the informational feedback (infos, warnings and potential problems) joined by newlines,
        and the errors combined into a `FeedbackError` (or `None` if there are no errors).
        """
        if self.result is None:
            return "", None
        errors = [item for item in self.result.feedback if item.is_error()]
        info = "\n".join(str(item) for item in self.result.feedback if not item.is_error())
        return info, (FeedbackError(errors) if errors else None)


class Parser(Protocol):
    """
    A parser or combinator.

    Reads the cursor of `pd`, stores exactly one result in `pd.result` and returns `pd` and the context.
    """
    def __call__(self, pd: ParseData, ctx: Any, /) -> tuple[ParseData, Any]: ...

class Semantics(Protocol):
    """
    A semantic hook. Called after a parser matched successfully.

    May set `pd.result.value`, add feedback or turn the result into a failure using `ParseData.reject()`.
    `pd.sub_results` holds the subresults of the combinator that called it.
    """
    def __call__(self, pd: ParseData, ctx: Any, /) -> tuple[ParseData, Any]: ...

FactoryParameter = Parser | str | re.Pattern

def convert_factory_parameter(parser: FactoryParameter) -> Parser:
    if isinstance(parser, str):
        return literal(parser)
    elif isinstance(parser, re.Pattern):
        return regex(parser)
    else:
        assert callable(parser)
        return parser

def convert_factory_parameters(parsers: tuple[FactoryParameter, ...]) -> tuple[Parser, ...]:
    return tuple(convert_factory_parameter(parser) for parser in parsers)


def handle_semantics(semantics: Semantics | None, pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
    """
    The last step of every parser.

    Calls `semantics` if it's given and the current result is a success. Always clears the subresults.
    """
    if semantics is not None and pd.current_result().err_pos < 0:
        pd, ctx = semantics(pd, ctx)
    pd.sub_results = []
    return pd, ctx


def parse(parser: FactoryParameter, content: str, *, name: str = "", ctx: Any = None, pos: int = 0) -> tuple[ParseData, Any]:
    """
    Parses `content` starting at `pos`.

    ```
    pd, ctx = parse(seq("flow", "no"), "flowno")
    info, err = pd.get_feedback()
    if err is not None:
        raise err
    ```
    """
    pd = ParseData(name, content)
    pd.source.pos = pos
    pd, ctx = convert_factory_parameter(parser)(pd, ctx)
    result = pd.current_result()
    if result.has_error():
        logger.debug("Parsing %r failed at position %d.", name, result.err_pos)
    else:
        logger.debug("Parsing %r matched %d characters.", name, len(result.text))
    return pd, ctx



def literal(value: str, *, semantics: Semantics | None = None) -> Parser:
    """
    Parser factory.

    Matches the given string. Case sensitive. The value of the result is the matched string.
    """
    if not value:
        raise ConfigError("Expected a literal, got an empty string.")
    def parse_literal(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        if pd.source.content.startswith(value, pd.source.pos):
            result = pd.matched(len(value))
            result.value = value
        else:
            pd.unmatched(f"literal '{value}' expected")
        return handle_semantics(semantics, pd, ctx)
    return parse_literal

def regex(pattern: str | re.Pattern, flags: int | re.RegexFlag = 0, *, semantics: Semantics | None = None) -> Parser:
    """
    Parser factory.

    Matches the regular expression at the current position. The value of the result is the matched string.
    """
    try:
        compiled = re.compile(pattern, flags)
    except re.error as e:
        raise ConfigError(f"Invalid regular expression `{pattern}`: {e}") from e
    if not compiled.pattern:
        raise ConfigError("Expected a regular expression, got an empty string.")
    logger.debug("Compiled regular expression parser for `%s`.", compiled.pattern)
    def parse_regex(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        m = compiled.match(pd.source.content, pd.source.pos)
        if m is not None:
            result = pd.matched(m.end() - m.start())
            result.value = result.text
        else:
            pd.unmatched(f"expecting match for regexp `{compiled.pattern}`")
        return handle_semantics(semantics, pd, ctx)
    return parse_regex



def _collect(result: ParseResult, sub_results: list[ParseResult]) -> None:
    """Stores the values of the subresults as the value of the result and appends their feedback."""
    result.value = [sub.value for sub in sub_results]
    for sub in sub_results:
        result.feedback.extend(sub.feedback)

def _fail_all(pd: ParseData, ckpt: Checkpoint, msg: str) -> None:
    """Fails at the checkpoint, merging the feedback of all the failed subresults."""
    ckpt.rollback()
    result = pd.unmatched(msg)
    for sub in ckpt.sub_results:
        result.feedback.extend(sub.feedback)


def repeat(
    parser: FactoryParameter,
    min_count: int = 0,
    max_count: int | None = None,
    *,
    semantics: Semantics | None = None,
) -> Parser:
    """
    Combinator factory.

    Repeatedly matches the given parser until it fails or matched `max_count` times. (`None` for no limit.)
    Succeeds if it matched at least `min_count` times.

    The value of the result is the list of the values of the matches.
    If `max_count` is at most 1, the value is the value of the single match (or `NO_VALUE`).

    If it fails, the feedback of the failed match is added to its own error.
    """
    if min_count < 0:
        raise ConfigError(f"The minimum count can't be negative, but is: {min_count}")
    if max_count is not None and max_count < min_count:
        raise ConfigError(f"The maximum count ({max_count}) is smaller than the minimum count ({min_count}).")
    subparser = convert_factory_parameter(parser)
    def parse_repeat(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        with pd.checkpoint() as ckpt:
            failure: ParseResult | None = None
            end = ckpt.pos
            while max_count is None or len(ckpt.sub_results) < max_count:
                pd, ctx = subparser(pd, ctx)
                if pd.current_result().has_error():
                    failure = pd.result
                    break
                ckpt.sub_results.append(pd.current_result())
                end = pd.source.pos
            count = len(ckpt.sub_results)
            relative_pos = end - ckpt.pos
            ckpt.rollback()
            if count >= min_count:
                result = pd.matched(relative_pos)
                _collect(result, ckpt.sub_results)
                if max_count is not None and max_count <= 1:
                    result.value = result.value[0] if result.value else NO_VALUE
            else:
                assert failure is not None
                result = pd.unmatched(f"at least {min_count} matches expected but got only {count}", relative_pos)
                result.feedback.extend(failure.feedback)
        pd.sub_results = ckpt.sub_results
        return handle_semantics(semantics, pd, ctx)
    return parse_repeat

def repeat0(parser: FactoryParameter, *, semantics: Semantics | None = None) -> Parser:
    """
    Combinator factory. Matches the given parser as often as possible, even zero times.

    Never returns if the parser can succeed without consuming anything (e.g. `optional(...)`).
    """
    return repeat(parser, 0, None, semantics=semantics)

def repeat1(parser: FactoryParameter, *, semantics: Semantics | None = None) -> Parser:
    """
    Combinator factory. Matches the given parser as often as possible, but at least once.

    Never returns if the parser can succeed without consuming anything (e.g. `optional(...)`).
    """
    return repeat(parser, 1, None, semantics=semantics)

def optional(parser: FactoryParameter, *, semantics: Semantics | None = None) -> Parser:
    """
    Combinator factory.

    Matches the given parser once. Succeeds even if it doesn't match.

    If it didn't match, the result is empty: no text, no value and no feedback.
    """
    subparser = convert_factory_parameter(parser)
    def parse_optional(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        with pd.checkpoint() as ckpt:
            pd, ctx = subparser(pd, ctx)
            if pd.current_result().has_error():
                ckpt.rollback()
                pd.matched(0)
        return handle_semantics(semantics, pd, ctx)
    return parse_optional

def seq(*parsers: FactoryParameter, semantics: Semantics | None = None) -> Parser:
    """
    Combinator factory.

    All the given parsers must match in sequence for the parser to succeed.

    The value of the result is the list of the values of the parsers.
    If one of them fails, its result becomes the result of the sequence.
    """
    if len(parsers) <= 0:
        raise ConfigError("At least one parser required.")
    subparsers = convert_factory_parameters(parsers)
    def parse_seq(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        with pd.checkpoint() as ckpt:
            for subparser in subparsers:
                pd, ctx = subparser(pd, ctx)
                if pd.current_result().has_error():
                    ckpt.rollback()
                    pd.current_result().pos = ckpt.pos
                    ckpt.sub_results.clear()
                    break
                ckpt.sub_results.append(pd.current_result())
            else:
                relative_pos = ckpt.relative_pos()
                ckpt.rollback()
                _collect(pd.matched(relative_pos), ckpt.sub_results)
        pd.sub_results = ckpt.sub_results
        return handle_semantics(semantics, pd, ctx)
    return parse_seq

def oneof(*parsers: FactoryParameter, semantics: Semantics | None = None) -> Parser:
    """
    Combinator factory.

    Attempts to match the parsers in order, until one matches. Its result is the result of this parser.

    If none match, fails with the feedback of all of them.
    """
    if len(parsers) <= 0:
        raise ConfigError("At least one parser required.")
    subparsers = convert_factory_parameters(parsers)
    def parse_oneof(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        with pd.checkpoint() as ckpt:
            for subparser in subparsers:
                ckpt.rollback()
                pd, ctx = subparser(pd, ctx)
                if not pd.current_result().has_error():
                    break
                ckpt.sub_results.append(pd.current_result())
            else:
                _fail_all(pd, ckpt, f"any subparser should match; all {len(subparsers)} failed")
        return handle_semantics(semantics, pd, ctx)
    return parse_oneof

def best(*parsers: FactoryParameter, semantics: Semantics | None = None) -> Parser:
    """
    Combinator factory.

    Attempts to match all the parsers and chooses the one that got the furthest.
    On a tie, the earlier parser wins.

    If none match, fails with the feedback of all of them.
    """
    if len(parsers) <= 0:
        raise ConfigError("At least one parser required.")
    subparsers = convert_factory_parameters(parsers)
    def parse_best(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
        with pd.checkpoint() as ckpt:
            best_result: ParseResult | None = None
            best_end = ckpt.pos
            for subparser in subparsers:
                ckpt.rollback()
                pd, ctx = subparser(pd, ctx)
                if pd.current_result().has_error():
                    ckpt.sub_results.append(pd.current_result())
                elif best_result is None or pd.source.pos > best_end:
                    best_result = pd.result
                    best_end = pd.source.pos
            if best_result is not None:
                pd.source.pos = best_end
                pd.result = best_result
            else:
                _fail_all(pd, ckpt, f"best subparser should match; all {len(subparsers)} failed")
        return handle_semantics(semantics, pd, ctx)
    return parse_best
