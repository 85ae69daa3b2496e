"""
Library to build recursive descent parsers out of small parser functions.

See the objects for more explanations.

See the `combparse.general` module for more general purpose parsers.

Every parser has the same shape. It takes the `ParseData` and a context, stores exactly one
`ParseResult` in `pd.result` and returns both:
```
def foo(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
    if pd.source.content.startswith("abc", pd.source.pos):
        pd.matched(3)                           # success
    else:
        pd.unmatched("'abc' expected")          # failure
    return handle_semantics(None, pd, ctx)
```

Combining parsers:
```
def number_value(pd: ParseData, ctx: Any) -> tuple[ParseData, Any]:
    pd.result.value = pd.sub_results[2].value
    return pd, ctx

assignment = seq(ident(), "=", natural(), semantics=number_value)
```

Using parsers:
```
pd, ctx = parse(assignment, "x=42", name="example")

if pd.result:
    ... # `pd.result.value` is 42
else:
    info, err = pd.get_feedback()
    raise err
```
"""

import combparse.const as const
import combparse.main
from combparse.main import (
    NO_VALUE,
    NoValue,
    ConfigError,
    Location,
    SourceData,
    FeedbackKind,
    ParseMessage,
    ParseError,
    FeedbackItem,
    FeedbackError,
    ParseResult,
    Checkpoint,
    ParseData,
    Parser,
    Semantics,
    FactoryParameter,
    handle_semantics,
    parse,
    literal,
    regex,
    repeat,
    repeat0,
    repeat1,
    optional,
    seq,
    oneof,
    best,
)
import combparse.general as general
from combparse.general import (
    natural,
    ident,
    space,
    eof,
    line_comment,
    block_comment,
)

