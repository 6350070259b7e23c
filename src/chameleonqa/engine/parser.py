"""ChameleonQA Parser — raw Playwright script to a semantic action chain.

Tokenization is table-driven: ``TOKEN_RULES`` is an ordered sequence of
``TokenRule(name, pattern, build)`` records evaluated top to bottom against
each statement, so a new statement shape is one more record, not another
branch.  Unmatched statements are dropped without error.

Clustering is an explicit fold over the token stream carrying a
``ClusterFold(clusters, current, previous)`` accumulator.
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import re
from typing import Callable

from chameleonqa.config import ChameleonConfig
from chameleonqa.engine.knowledge import ActionToken, SemanticCluster, TestDataItem
from chameleonqa.engine.locators import (
    CONSTRUCTOR_NAMES,
    LocatorDescriptor,
    contains_constructor,
    descriptor_matches_keywords,
    find_locator,
    parse_locator,
    quoted_pattern,
)

logger = logging.getLogger("chameleonqa.engine.parser")

DIRECT_ACTIONS = "click|fill|type|check|uncheck|press|hover|dblclick|selectOption"
ASSERTIONS = (
    "toBeVisible|toHaveText|toHaveValue|toContainText|toBe|toHaveCSS|toBeChecked|toBeEnabled|toBeDisabled"
    "|toHaveURL|toHaveTitle|toHaveCount|toBeHidden|toHaveAttribute"
)
TEXT_EXTRACTION = ("textContent", "innerText", "inputValue")

# Constructor arguments: quoted strings, one option object, anything but parens.
_ARGS = r"""(?:'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*"|`(?:\\.|[^`\\])*`|\{[^}]*\}|[^()'"`{}])*"""
_AWAIT = r"^(?:await\s+)?"

_SKIP_PREFIXES = ("//", "/*", "*", "import ", "test(", "test.describe", "test.only", "test.skip", "export ", "}")
_DECLARATION_RE = re.compile(r"^(?:(?:async\s+)?function\b|class\b|(?:const|let|var)\s+\{.*\}\s*=\s*require)")
_LITERAL_RE = re.compile(r"^" + quoted_pattern("lit") + r"$")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][\w$]*$")


@dataclasses.dataclass(frozen=True)
class Statement:
    text: str
    line_number: int


SymbolTable = dict[str, LocatorDescriptor]
TokenBuilder = Callable[[re.Match, Statement, int, SymbolTable], "ActionToken | None"]


@dataclasses.dataclass(frozen=True)
class TokenRule:
    name: str
    pattern: re.Pattern
    build: TokenBuilder


@dataclasses.dataclass
class ParseResult:
    tokens: list[ActionToken]
    clusters: list[SemanticCluster]
    test_data: list[TestDataItem]


# ---------------------------------------------------------------------------
# Statement splitting
# ---------------------------------------------------------------------------


def split_top_level(text: str, separator: str = ",") -> list[str]:
    """Split on ``separator`` outside quotes and brackets."""
    parts: list[str] = []
    depth = 0
    quote_char: str | None = None
    escaped = False
    start = 0
    for i, ch in enumerate(text):
        if quote_char:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote_char:
                quote_char = None
            continue
        if ch in "'\"`":
            quote_char = ch
        elif ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth = max(depth - 1, 0)
        elif ch == separator and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return parts


def _strip_line_comment(line: str) -> str:
    quote_char: str | None = None
    escaped = False
    for i, ch in enumerate(line):
        if quote_char:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote_char:
                quote_char = None
            continue
        if ch in "'\"`":
            quote_char = ch
        elif line.startswith("//", i):
            return line[:i]
    return line


def split_statements(raw_code: str) -> list[Statement]:
    """Split raw text into statements: one per line, further split on top-level ``;``."""
    statements: list[Statement] = []
    for line_number, line in enumerate(raw_code.splitlines(), 1):
        stripped = line.strip()
        if not stripped or stripped.startswith(("//", "/*", "*")):
            continue
        for part in split_top_level(_strip_line_comment(stripped), ";"):
            text = part.strip()
            if text:
                statements.append(Statement(text=text, line_number=line_number))
    return statements


def _is_skipped(text: str) -> bool:
    return text.startswith(_SKIP_PREFIXES) or _DECLARATION_RE.match(text) is not None


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def parse_value(arg: str | None) -> tuple[str | None, bool]:
    """(value, is_reference) for one call argument; literals are unquoted."""
    if arg is None:
        return None, False
    text = arg.strip()
    if not text:
        return None, False
    literal = _LITERAL_RE.match(text)
    if literal:
        return re.sub(r"\\(.)", r"\1", literal.group("lit")), False
    return text, True


def _first_arg(args: str) -> str | None:
    parts = [p for p in split_top_level(args) if p.strip()]
    return parts[0] if parts else None


def _selector_from_arg(arg: str, symbols: SymbolTable) -> LocatorDescriptor | None:
    text = arg.strip()
    if _IDENTIFIER_RE.match(text):
        return symbols.get(text)
    if "page." in text:
        return find_locator(text)
    return parse_locator(text)


# ---------------------------------------------------------------------------
# Token builders
# ---------------------------------------------------------------------------


def _build_goto(match: re.Match, stmt: Statement, position: int, symbols: SymbolTable) -> ActionToken:
    return ActionToken(
        position=position,
        line_number=stmt.line_number,
        raw_code=stmt.text,
        actor="page",
        operation="goto",
        value=match.group("url"),
    )


def _build_wait_url(match: re.Match, stmt: Statement, position: int, symbols: SymbolTable) -> ActionToken:
    value, is_ref = parse_value(match.group("arg"))
    return ActionToken(
        position=position,
        line_number=stmt.line_number,
        raw_code=stmt.text,
        actor="page",
        operation="waitForURL",
        value=value,
        value_is_reference=is_ref,
    )


def _build_expect(match: re.Match, stmt: Statement, position: int, symbols: SymbolTable) -> ActionToken:
    target = match.group("target").strip()
    locator: LocatorDescriptor | None = None
    if target != "page":
        locator = _selector_from_arg(target, symbols)
    value, is_ref = parse_value(_first_arg(match.group("args")))
    return ActionToken(
        position=position,
        line_number=stmt.line_number,
        raw_code=stmt.text,
        actor="page",
        operation="expect",
        locator=locator,
        value=value,
        value_is_reference=is_ref,
        is_assertion=True,
        assertion=match.group("matcher"),
        negated=bool(match.group("neg")),
        raw_target=None if locator else target,
    )


def _build_declaration(match: re.Match, stmt: Statement, position: int, symbols: SymbolTable) -> ActionToken | None:
    locator = find_locator(match.group("expr"))
    if locator is None:
        return None
    return ActionToken(
        position=position,
        line_number=stmt.line_number,
        raw_code=stmt.text,
        actor="page",
        operation="assign",
        locator=locator,
        variable_name=match.group("name"),
    )


def _build_value_assignment(
    match: re.Match, stmt: Statement, position: int, symbols: SymbolTable
) -> ActionToken | None:
    locator = parse_locator(f"{match.group('ctor')}({match.group('cargs')})")
    if locator is None:
        return None
    return ActionToken(
        position=position,
        line_number=stmt.line_number,
        raw_code=stmt.text,
        actor="page",
        operation=match.group("method"),
        locator=locator,
        variable_name=match.group("name"),
    )


def _build_chain(match: re.Match, stmt: Statement, position: int, symbols: SymbolTable) -> ActionToken | None:
    locator = parse_locator(f"{match.group('ctor')}({match.group('cargs')})")
    if locator is None:
        return None
    value, is_ref = parse_value(_first_arg(match.group("margs")))
    return ActionToken(
        position=position,
        line_number=stmt.line_number,
        raw_code=stmt.text,
        actor="page",
        operation=match.group("method"),
        locator=locator,
        value=value,
        value_is_reference=is_ref,
    )


def _build_direct(match: re.Match, stmt: Statement, position: int, symbols: SymbolTable) -> ActionToken | None:
    args = [a for a in split_top_level(match.group("args")) if a.strip()]
    if not args:
        return None
    locator = _selector_from_arg(args[0], symbols)
    value, is_ref = parse_value(args[1] if len(args) > 1 else None)
    return ActionToken(
        position=position,
        line_number=stmt.line_number,
        raw_code=stmt.text,
        actor="page",
        operation=match.group("method"),
        locator=locator,
        value=value,
        value_is_reference=is_ref,
    )


def _build_stored_action(match: re.Match, stmt: Statement, position: int, symbols: SymbolTable) -> ActionToken | None:
    name = match.group("name")
    if name not in symbols:
        return None
    value, is_ref = parse_value(_first_arg(match.group("args")))
    return ActionToken(
        position=position,
        line_number=stmt.line_number,
        raw_code=stmt.text,
        actor=name,
        operation=match.group("method"),
        locator=symbols[name],
        value=value,
        value_is_reference=is_ref,
        variable_name=match.group("var"),
    )


TOKEN_RULES: tuple[TokenRule, ...] = (
    TokenRule(
        "navigate",
        re.compile(_AWAIT + r"page\.goto\s*\(\s*" + quoted_pattern("url") + r"\s*(?:,[^)]*)?\)"),
        _build_goto,
    ),
    TokenRule(
        "wait-for-url",
        re.compile(_AWAIT + r"page\.waitForURL\s*\(\s*(?P<arg>.*?)\s*(?:,\s*\{[^}]*\})?\s*\)\s*$"),
        _build_wait_url,
    ),
    TokenRule(
        "assertion",
        re.compile(
            _AWAIT
            + r"expect\s*\(\s*(?P<target>.*?)\s*\)\s*(?P<neg>\.not)?\s*\.(?P<matcher>"
            + ASSERTIONS
            + r")\s*\((?P<args>.*)\)\s*$"
        ),
        _build_expect,
    ),
    TokenRule(
        "value-assignment",
        re.compile(
            r"^(?:const|let|var)\s+(?P<name>\w+)\s*=\s*await\s+page\.(?P<ctor>"
            + CONSTRUCTOR_NAMES
            + r")\s*\((?P<cargs>"
            + _ARGS
            + r")\)(?:\.(?:first|last|nth)\([^)]*\))*\.(?P<method>"
            + "|".join(TEXT_EXTRACTION)
            + r")\s*\(\s*\)\s*$"
        ),
        _build_value_assignment,
    ),
    TokenRule(
        "stored-locator",
        re.compile(
            r"^(?:const|let|var)\s+(?P<name>\w+)\s*=\s*(?:await\s+)?page\.(?P<expr>(?:"
            + CONSTRUCTOR_NAMES
            + r")\s*\(.*\))\s*$"
        ),
        _build_declaration,
    ),
    TokenRule(
        "chained-action",
        re.compile(
            _AWAIT
            + r"page\.(?P<ctor>"
            + CONSTRUCTOR_NAMES
            + r")\s*\((?P<cargs>"
            + _ARGS
            + r")\)(?:\.(?:first|last|nth)\([^)]*\))*\.(?P<method>\w+)\s*\((?P<margs>.*)\)\s*$"
        ),
        _build_chain,
    ),
    TokenRule(
        "direct-action",
        re.compile(_AWAIT + r"page\.(?P<method>" + DIRECT_ACTIONS + r")\s*\((?P<args>.*)\)\s*$"),
        _build_direct,
    ),
    TokenRule(
        "stored-action",
        re.compile(
            _AWAIT
            + r"(?:(?:const|let|var)\s+(?P<var>\w+)\s*=\s*(?:await\s+)?)?(?P<name>\w+)\.(?P<method>\w+)\s*\((?P<args>.*)\)\s*$"
        ),
        _build_stored_action,
    ),
)


# ---------------------------------------------------------------------------
# Tokenization
# ---------------------------------------------------------------------------


def tokenize_statement(stmt: Statement, position: int, symbols: SymbolTable) -> ActionToken | None:
    """Apply the rule table to one statement; first rule that builds a token wins."""
    if _is_skipped(stmt.text):
        return None
    for rule in TOKEN_RULES:
        match = rule.pattern.search(stmt.text)
        if not match:
            continue
        token = rule.build(match, stmt, position, symbols)
        if token is not None:
            return token
    logger.debug("Line %d not recognised, dropped: %s", stmt.line_number, stmt.text)
    return None


def tokenize(raw_code: str) -> list[ActionToken]:
    tokens: list[ActionToken] = []
    symbols: SymbolTable = {}
    for stmt in split_statements(raw_code):
        token = tokenize_statement(stmt, len(tokens), symbols)
        if token is None:
            continue
        if token.operation == "assign" and token.variable_name and token.locator:
            symbols = {**symbols, token.variable_name: token.locator}
        tokens.append(token)
    return tokens


# ---------------------------------------------------------------------------
# Clustering
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class ClusterFold:
    clusters: tuple[SemanticCluster, ...]
    current: SemanticCluster
    previous: ActionToken | None


def _label(token: ActionToken | None, fallback: str) -> str:
    if token is None or token.locator is None:
        return fallback
    return token.locator.name or token.locator.value


def cluster_intent(cluster: SemanticCluster) -> str:
    """Human-readable intent, computed once when the cluster closes."""
    if cluster.type == "NAVIGATION":
        goto = next((t for t in cluster.tokens if t.operation == "goto"), None)
        return f"Navigate to {goto.value}" if goto else "Navigate"
    if cluster.type == "AUTHENTICATION":
        return "Authenticate user / Login flow"
    if cluster.type == "FORM_SUBMISSION":
        return "Fill form fields"
    if cluster.type == "MENU_INTERACTION":
        clicks = [t for t in cluster.tokens if t.operation == "click"]
        if len(clicks) >= 2:
            return f"Open {_label(clicks[0], 'menu')} and select {_label(clicks[-1], 'item')}"
        return "Menu interaction"
    if cluster.type == "VERIFICATION":
        return "Verify expected state"
    return "Perform actions"


def _seal(cluster: SemanticCluster) -> SemanticCluster:
    sealed_type = cluster.type
    if sealed_type == "GENERIC" and cluster.tokens and all(t.is_assertion for t in cluster.tokens):
        sealed_type = "VERIFICATION"
    sealed = dataclasses.replace(cluster, type=sealed_type)
    return dataclasses.replace(sealed, intent=cluster_intent(sealed))


def _close(fold: ClusterFold) -> tuple[SemanticCluster, ...]:
    if not fold.current.tokens:
        return fold.clusters
    return (*fold.clusters, _seal(fold.current))


def _open(clusters: tuple[SemanticCluster, ...], cluster_type: str, tokens: list[ActionToken]) -> SemanticCluster:
    return SemanticCluster(id=f"cluster_{len(clusters)}", type=cluster_type, intent="", tokens=tokens)


def _append(cluster: SemanticCluster, token: ActionToken, cluster_type: str | None = None) -> SemanticCluster:
    return dataclasses.replace(
        cluster,
        type=cluster_type or cluster.type,
        tokens=[*cluster.tokens, token],
        assertions=[*cluster.assertions, token] if token.is_assertion else list(cluster.assertions),
    )


def _make_step(config: ChameleonConfig) -> Callable[[ClusterFold, ActionToken], ClusterFold]:
    def step(fold: ClusterFold, token: ActionToken) -> ClusterFold:
        current = fold.current

        # 1. Navigation always opens a new cluster
        if token.operation == "goto":
            closed = _close(fold)
            return ClusterFold(closed, _open(closed, "NAVIGATION", [token]), token)

        # 2. Assertions stay with the current cluster
        if token.is_assertion:
            return ClusterFold(fold.clusters, _append(current, token), token)

        # 3. Authentication
        if descriptor_matches_keywords(token.locator, config.auth_keywords):
            if current.type == "AUTHENTICATION":
                return ClusterFold(fold.clusters, _append(current, token), token)
            closed = _close(fold)
            return ClusterFold(closed, _open(closed, "AUTHENTICATION", [token]), token)

        # 4. Menu interaction: click right after a click on a container
        previous = fold.previous
        if (
            token.operation == "click"
            and previous is not None
            and previous.operation == "click"
            and descriptor_matches_keywords(previous.locator, config.container_keywords)
        ):
            if current.type != "NAVIGATION":
                return ClusterFold(fold.clusters, _append(current, token, "MENU_INTERACTION"), token)
            # keep navigation clusters navigation-led: move the opening click out
            head = dataclasses.replace(current, tokens=current.tokens[:-1])
            closed = _close(ClusterFold(fold.clusters, head, previous))
            return ClusterFold(closed, _open(closed, "MENU_INTERACTION", [previous, token]), token)

        # 5. Form input
        if token.operation in ("fill", "type"):
            if current.type in ("FORM_SUBMISSION", "AUTHENTICATION"):
                return ClusterFold(fold.clusters, _append(current, token), token)
            closed = _close(fold)
            return ClusterFold(closed, _open(closed, "FORM_SUBMISSION", [token]), token)

        # 6. Default
        return ClusterFold(fold.clusters, _append(current, token), token)

    return step


def cluster_tokens(tokens: list[ActionToken], config: ChameleonConfig | None = None) -> list[SemanticCluster]:
    """Partition the token stream into semantic clusters (order preserved, no overlap)."""
    config = config or ChameleonConfig()
    initial = ClusterFold(clusters=(), current=_open((), "GENERIC", []), previous=None)
    final = functools.reduce(_make_step(config), tokens, initial)
    return list(_close(final))


# ---------------------------------------------------------------------------
# Test data
# ---------------------------------------------------------------------------

_CONST_RE = re.compile(
    r"^(?:const|let|var)\s+(?P<name>\w+)\s*=\s*(?:" + quoted_pattern("str") + r"|(?P<num>-?\d+(?:\.\d+)?)|(?P<bool>true|false))\s*$"
)
_FILL_CALL_RE = re.compile(r"\.(?:fill|type)\s*\(")


def _call_args(text: str, open_paren: int) -> str:
    """Text between the parenthesis at ``open_paren`` and its partner."""
    depth = 0
    quote_char: str | None = None
    for i in range(open_paren, len(text)):
        ch = text[i]
        if quote_char:
            if ch == quote_char and text[i - 1] != "\\":
                quote_char = None
            continue
        if ch in "'\"`":
            quote_char = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return text[open_paren + 1 : i]
    return text[open_paren + 1 :]


def _used_as_fill_value(name: str, statements: list[Statement]) -> bool:
    for stmt in statements:
        for call in _FILL_CALL_RE.finditer(stmt.text):
            args = [a.strip() for a in split_top_level(_call_args(stmt.text, call.end() - 1))]
            if name in args:
                return True
    return False


def _used_in_assertion(name: str, statements: list[Statement]) -> bool:
    pattern = re.compile(rf"\b{re.escape(name)}\b")
    return any("expect" in s.text and pattern.search(s.text.split("expect", 1)[1]) for s in statements)


def extract_test_data(raw_code: str) -> list[TestDataItem]:
    """Literal constants of the script, classified by how the script uses them."""
    statements = split_statements(raw_code)
    items: list[TestDataItem] = []
    for stmt in statements:
        match = _CONST_RE.match(stmt.text)
        if not match or contains_constructor(stmt.text):
            continue
        if match.group("num") is not None:
            value, value_type = match.group("num"), "number"
        elif match.group("bool") is not None:
            value, value_type = match.group("bool"), "boolean"
        else:
            value, value_type = match.group("str"), "string"
        items.append(TestDataItem(variable_name=match.group("name"), value=value, type=value_type))

    for item in items:
        if _used_as_fill_value(item.variable_name, statements):
            item.usage = "fill"
        elif _used_in_assertion(item.variable_name, statements):
            item.usage = "assertion"
    return items


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def parse_raw_code(raw_code: str, config: ChameleonConfig | None = None) -> ParseResult:
    tokens = tokenize(raw_code)
    clusters = cluster_tokens(tokens, config)
    test_data = extract_test_data(raw_code)
    logger.info(
        "Parsed %d token(s) into %d cluster(s); %d test-data item(s)",
        len(tokens),
        len(clusters),
        len(test_data),
    )
    return ParseResult(tokens=tokens, clusters=clusters, test_data=test_data)
