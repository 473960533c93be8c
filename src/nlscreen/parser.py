"""Query Parser.

Turns lexed screener text into a ``QueryPlan`` plus a detected intent.

Parsing is best effort: clauses that cannot be understood (unknown
field, malformed number, unit mismatch) are collected as skipped and the
rest of the query still runs. Only a query with no usable clause at all
fails, with ``EmptyQueryError``.

Grammar (informal):

    query       := refinement | meta | screen
    refinement  := "+N" clause+
    meta        := "help" | "clear"
    screen      := clause (("and" | "or") clause)* sort_clause? limit_clause?
    clause      := field op value
                 | field "between" value "and" value
                 | "exclude" sector_list
                 | "in" sector_list "sector"?
                 | sector_list "sector"?
                 | qualifier field | heuristic_phrase
                 | "(" screen ")"
    sort_clause := ("ascending" | "descending") field
                 | ("sort" | "sorted") "by"? field direction?
                 | superlative field
    limit_clause:= ("top" | "bottom") N ("by" field)?

``and`` binds tighter than ``or``; adjacent clauses without a connective
are conjoined.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional
import logging

from src.nlscreen.catalog import (
    FIELD_CATALOG,
    FieldCatalog,
    HEURISTIC_MAX_WORDS,
    HEURISTIC_PHRASES,
    QUALIFIER_WORDS,
    SORT_PHRASE_MAX_WORDS,
    SORT_PHRASES,
)
from src.nlscreen.config import (
    FieldKind,
    FILLER_WORDS,
    IntentKind,
    Operator,
    SortDirection,
)
from src.nlscreen.errors import (
    EmptyQueryError,
    MalformedComparisonError,
    ParseError,
)
from src.nlscreen.lexer import Lexer, Token, TokenKind
from src.nlscreen.models import (
    Comparison,
    HeuristicMatch,
    Predicate,
    QueryIntent,
    QueryPlan,
    SectorExclude,
    SectorIn,
    SkippedClause,
    SortSpec,
    TRUE,
    conjoin,
    disjoin,
    negate,
)

logger = logging.getLogger(__name__)

SUPERLATIVES = {
    "highest": SortDirection.DESC, "largest": SortDirection.DESC,
    "biggest": SortDirection.DESC, "most": SortDirection.DESC,
    "maximum": SortDirection.DESC, "max": SortDirection.DESC,
    "lowest": SortDirection.ASC, "smallest": SortDirection.ASC,
    "least": SortDirection.ASC, "minimum": SortDirection.ASC,
    "min": SortDirection.ASC, "cheapest": SortDirection.ASC,
}

# Words after a bare sector name that make an ambiguous one ("it") count
SECTOR_ANCHOR_WORDS = frozenset({
    "stocks", "stock", "companies", "company", "shares", "names", "space",
    "industry", "counters", "scrips",
})

HELP_PATTERN = re.compile(r"^\s*(?:\?+|help|syntax)\s*[?.!]*\s*$|\bhow (?:do i|to)\b", re.IGNORECASE)
CLEAR_PATTERN = re.compile(
    r"^\s*(?:clear|reset|start over|new session)"
    r"(?:\s+(?:the\s+)?(?:context|session|history|all|everything|filters))?\s*[.!]?\s*$",
    re.IGNORECASE,
)

MAX_FIELD_WORDS = 4
MAX_SECTOR_WORDS = 3

# Clause item markers for the boolean pass
_AND = "and"
_OR = "or"
_LPAREN = "("
_RPAREN = ")"


@dataclass
class ParseResult:
    """Outcome of parsing one query."""
    intent: QueryIntent
    plan: QueryPlan
    skipped: list[SkippedClause] = field(default_factory=list)
    heuristics: list[HeuristicMatch] = field(default_factory=list)
    clause_count: int = 0
    text: str = ""


class QueryParser:
    """Parses screener text into plans.

    Example:
        parser = QueryParser()
        result = parser.parse_text("IT sector PE < 15 and ROE > 20%")
        result.plan.predicate  # And(...)
    """

    def __init__(
        self,
        catalog: Optional[FieldCatalog] = None,
        lexer: Optional[Lexer] = None,
    ):
        self.catalog = catalog or FIELD_CATALOG
        self.lexer = lexer or Lexer()

    def parse_text(self, text: str) -> ParseResult:
        """Tokenize and parse raw text, recognising meta requests."""
        if HELP_PATTERN.search(text):
            return ParseResult(QueryIntent(IntentKind.HELP), QueryPlan(), text=text)
        if CLEAR_PATTERN.match(text):
            return ParseResult(QueryIntent(IntentKind.CLEAR_CONTEXT), QueryPlan(), text=text)
        result = self.parse(self.lexer.tokenize(text))
        result.text = text
        return result

    def parse(self, tokens: list[Token]) -> ParseResult:
        """Parse tokens into an intent and plan.

        Raises:
            EmptyQueryError: No clause could be parsed.
        """
        meta = _meta_intent(tokens)
        if meta is not None:
            return ParseResult(meta, QueryPlan())

        intent = QueryIntent(IntentKind.NEW_SCREEN)
        start = 0
        if tokens and tokens[0].kind == TokenKind.REFINEMENT:
            intent = QueryIntent.refinement(tokens[0].value)
            start = 1

        state = _Parser(tokens, start, self.catalog)
        plan = state.run()

        if state.clause_count == 0:
            text = " ".join(t.text for t in tokens)
            logger.info(f"No usable clause in query: {text!r}")
            raise EmptyQueryError(text)

        return ParseResult(
            intent=intent,
            plan=plan,
            skipped=state.skipped,
            heuristics=state.heuristics,
            clause_count=state.clause_count,
        )


def _meta_intent(tokens: list[Token]) -> Optional[QueryIntent]:
    """Help or clear when the query is nothing but that keyword."""
    meaningful = [
        t for t in tokens
        if not (t.kind == TokenKind.IDENT and t.text.lower() in FILLER_WORDS)
    ]
    if len(meaningful) != 1 or meaningful[0].kind != TokenKind.KEYWORD:
        return None
    if meaningful[0].value == "help":
        return QueryIntent(IntentKind.HELP)
    if meaningful[0].value == "clear":
        return QueryIntent(IntentKind.CLEAR_CONTEXT)
    return None


# =============================================================================
# Parser state
# =============================================================================

class _Parser:
    """Single-use scanner over one token stream."""

    def __init__(self, tokens: list[Token], start: int, catalog: FieldCatalog):
        self.tokens = tokens
        self.pos = start
        self.catalog = catalog

        self.items: list = []
        self.include: list[str] = []
        self.exclude: list[str] = []
        self.sort: Optional[SortSpec] = None
        self.limit: Optional[int] = None
        self.from_bottom = False

        self.skipped: list[SkippedClause] = []
        self.heuristics: list[HeuristicMatch] = []
        self.clause_count = 0

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    def run(self) -> QueryPlan:
        while self._current() is not None:
            before = self.pos
            self._scan_one()
            if self.pos == before:
                self.pos += 1

        tree = _BooleanBuilder(self.items).build()
        predicate = tree
        if self.include:
            predicate = conjoin(predicate, SectorIn(frozenset(self.include)))
        if self.exclude:
            predicate = conjoin(predicate, SectorExclude(frozenset(self.exclude)))

        return QueryPlan(
            predicate=predicate,
            sort=self.sort,
            limit=self.limit,
            from_bottom=self.from_bottom,
        )

    def _scan_one(self) -> None:
        token = self._current()
        kind = token.kind

        if kind in (TokenKind.COMMA, TokenKind.REFINEMENT):
            self.pos += 1
        elif kind == TokenKind.LPAREN:
            self.items.append(_LPAREN)
            self.pos += 1
        elif kind == TokenKind.RPAREN:
            self.items.append(_RPAREN)
            self.pos += 1
        elif kind == TokenKind.KEYWORD:
            self._scan_keyword(token)
        elif kind == TokenKind.NUMBER:
            self._skip(self.pos, self.pos + 1, "number without a field")
        elif kind == TokenKind.COMPARE_OP:
            end = self.pos + 1
            if self._peek(1) is not None and self._peek(1).kind in (TokenKind.NUMBER, TokenKind.IDENT):
                end += 1
            self._skip(self.pos, end, "comparison without a field")
        elif kind == TokenKind.QUOTED:
            sector = self.catalog.resolve_sector(token.value, anchored=True)
            if sector:
                self.pos += 1
                self._add_include([sector])
            else:
                self._skip(self.pos, self.pos + 1, "unrecognized phrase")
        else:
            self._scan_ident(token)

    def _scan_keyword(self, token: Token) -> None:
        value = token.value
        if value in (_AND, _OR):
            self.items.append(value)
            self.pos += 1
        elif value == "exclude":
            start = self.pos
            self.pos += 1
            if self._is_keyword(self._current(), "in"):
                self.pos += 1  # "not in Pharma"
            self._skip_sector_keyword()
            sectors = self._sector_list(anchored=True)
            if sectors:
                self._add_exclude(sectors)
            else:
                self._negate_clause(start)
        elif value == "in":
            self.pos += 1
            self._skip_sector_keyword()
            sectors = self._sector_list(anchored=True)
            if sectors:
                self._add_include(sectors)
        elif value in ("top", "bottom"):
            self._parse_limit(value)
        elif value in ("ascending", "descending"):
            self.pos += 1
            direction = SortDirection(value)
            match = self._field_at(self.pos)
            if match:
                key, n = match
                self.pos += n
                self._set_sort(key, direction)
        elif value == "sort":
            self.pos += 1
            if self._is_keyword(self._current(), "by"):
                self.pos += 1
            self._parse_sort_target(SortDirection.DESC)
        elif value == "by":
            self.pos += 1
            self._parse_sort_target(SortDirection.DESC)
        elif value == "sector":
            nxt = self._peek(1)
            if nxt is not None and nxt.kind == TokenKind.COMPARE_OP:
                self._parse_comparison("sector", 1)
            else:
                self.pos += 1
        else:
            # help / clear inside a longer query carry no screening meaning
            self.pos += 1

    # -------------------------------------------------------------------------
    # Identifiers
    # -------------------------------------------------------------------------

    def _scan_ident(self, token: Token) -> None:
        word = token.text.lower()

        direction = SUPERLATIVES.get(word)
        if direction is not None:
            if self._try_sort_phrase(direction):
                return
            match = self._field_at(self.pos + 1)
            if match:
                key, n = match
                self.pos += 1 + n
                self._set_sort(key, direction)
                return

        if self._try_heuristic_phrase():
            return
        if word in QUALIFIER_WORDS and self._try_qualifier(word):
            return

        match = self._field_at(self.pos)
        if match:
            key, n = match
            self._parse_field_clause(key, n)
            return

        sectors = self._sector_list(anchored=False)
        if sectors:
            self._add_include(sectors)
            return

        if word in FILLER_WORDS or word in QUALIFIER_WORDS:
            self.pos += 1
            return

        self._skip(self.pos, self.pos + 1, "unrecognized term")

    def _try_sort_phrase(self, direction: SortDirection) -> bool:
        """``biggest volume drop`` and similar named sorts."""
        for n in range(SORT_PHRASE_MAX_WORDS, 0, -1):
            words = self._words(self.pos + 1, n)
            if words is None or " ".join(words) not in SORT_PHRASES:
                continue
            key, phrase_direction = SORT_PHRASES[" ".join(words)]
            if direction == SortDirection.ASC:
                phrase_direction = (
                    SortDirection.DESC if phrase_direction == SortDirection.ASC
                    else SortDirection.ASC
                )
            self.pos += 1 + n
            self._set_sort(key, phrase_direction)
            return True
        return False

    def _negate_clause(self, start: int) -> None:
        """Apply the filter after an exclude keyword in reverse.

        Only a single filter clause can be negated. Anything else is
        skipped together with the keyword, never applied as written.
        """
        token = self._current()
        while token is not None and token.kind == TokenKind.IDENT and token.text.lower() in FILLER_WORDS:
            self.pos += 1
            token = self._current()

        if token is None or token.kind != TokenKind.IDENT:
            self._skip(start, self.pos, "nothing to exclude")
            return

        index = self.pos
        n_items, n_skipped, n_heuristics = len(self.items), len(self.skipped), len(self.heuristics)
        saved = (self.sort, self.limit, self.from_bottom, self.clause_count)
        self._scan_ident(token)

        added = self.items[n_items:]
        if (
            len(added) == 1
            and isinstance(added[0], Predicate)
            and len(self.skipped) == n_skipped
            and (self.sort, self.limit, self.from_bottom) == saved[:3]
        ):
            predicate = negate(added[0])
            self.items[n_items] = predicate
            if len(self.heuristics) > n_heuristics:
                self.heuristics[-1] = HeuristicMatch(self._text(start, self.pos), predicate)
            return

        reason = self.skipped[-1].reason if len(self.skipped) > n_skipped else "nothing to exclude"
        del self.items[n_items:]
        del self.skipped[n_skipped:]
        del self.heuristics[n_heuristics:]
        self.sort, self.limit, self.from_bottom, self.clause_count = saved

        if self.pos == index + 1 and token.text.isupper() and token.text.isalnum():
            # "exclude TCS"
            symbol = self.catalog.coerce("symbol", token.text)
            self.items.append(Comparison("symbol", Operator.NE, symbol))
            self.clause_count += 1
            return
        self._skip(start, self.pos, reason)

    def _try_heuristic_phrase(self) -> bool:
        for n in range(HEURISTIC_MAX_WORDS, 0, -1):
            words = self._words(self.pos, n)
            if words is None:
                continue
            phrase = " ".join(words).replace("-", " ")
            entries = HEURISTIC_PHRASES.get(phrase)
            if entries is None:
                continue
            if self._is_compare(self._peek(n)):
                return False

            predicate = TRUE
            for key, op, value in entries:
                if value is None:
                    value = self.catalog.require(key).default_threshold
                predicate = conjoin(predicate, Comparison(key, op, value))
            self._add_heuristic(self._text(self.pos, self.pos + n), predicate)
            self.pos += n
            return True
        return False

    def _try_qualifier(self, word: str) -> bool:
        match = self._field_at(self.pos + 1)
        if not match:
            return False
        key, n = match
        end = self.pos + 1 + n
        if self._is_compare(self._at(end)):
            return False

        descriptor = self.catalog.require(key)
        direction = QUALIFIER_WORDS[word]
        op = None
        if direction == "low":
            op = Operator.LT
        elif direction == "high":
            op = Operator.GT
        elif descriptor.higher_is_better is not None:
            better = descriptor.higher_is_better == (direction == "good")
            op = Operator.GT if better else Operator.LT

        if op is None or descriptor.default_threshold is None:
            self._skip(self.pos, end, f"no default threshold for {descriptor.label}")
            return True

        predicate = Comparison(key, op, descriptor.default_threshold)
        self._add_heuristic(self._text(self.pos, end), predicate)
        self.pos = end
        return True

    # -------------------------------------------------------------------------
    # Field clauses
    # -------------------------------------------------------------------------

    def _parse_field_clause(self, key: str, n: int) -> None:
        after = self._at(self.pos + n)
        if self._is_compare(after):
            self._parse_comparison(key, n)
            return
        if after is not None and after.is_keyword("ascending", "descending"):
            self._set_sort(key, SortDirection(after.value))
            self.pos += n + 1
            return
        self._skip(self.pos, self.pos + n, "no comparison given")

    def _parse_comparison(self, key: str, n: int) -> None:
        """Parse ``field op value`` starting at the field."""
        start = self.pos
        op_index = start + n
        op = self.tokens[op_index].value
        descriptor = self.catalog.require(key)

        try:
            if op == Operator.BETWEEN:
                predicate, end = self._parse_between(key, op_index + 1)
            else:
                value, end = self._parse_value(key, op_index + 1)
                if op not in descriptor.comparable_ops:
                    raise MalformedComparisonError(
                        f"{op.value} is not supported for {descriptor.label}",
                        descriptor.label,
                    )
                predicate = self._comparison(key, op, value)
        except ParseError as e:
            end = self._value_end(op_index + 1)
            self._skip(start, end, e.message)
            return

        self.items.append(predicate)
        self.clause_count += 1
        self.pos = end

    def _parse_between(self, key: str, index: int) -> tuple[Predicate, int]:
        low, index = self._parse_value(key, index)
        joiner = self._at(index)
        if joiner is not None and (
            joiner.is_keyword("and") or (joiner.kind == TokenKind.IDENT and joiner.text.lower() == "to")
        ):
            index += 1
        high, index = self._parse_value(key, index)
        if isinstance(low, str) or isinstance(high, str):
            raise MalformedComparisonError("between needs two numbers", key)
        if low > high:
            low, high = high, low
        predicate = conjoin(
            Comparison(key, Operator.GTE, low),
            Comparison(key, Operator.LTE, high),
        )
        return predicate, index

    def _parse_value(self, key: str, index: int):
        """Parse and coerce the value at ``index``; returns (value, next index)."""
        token = self._at(index)
        if token is None:
            raise MalformedComparisonError("comparison is missing a value", key)

        descriptor = self.catalog.require(key)
        if descriptor.kind == FieldKind.ENUM_SECTOR:
            match = self._sector_at(index, anchored=True)
            if match is None:
                raise MalformedComparisonError(f"unknown sector {token.text!r}", token.text)
            sector, n = match
            return sector, index + n

        if token.kind == TokenKind.NUMBER:
            value = self.catalog.coerce(key, token.value, token.unit, token.currency)
            return value, index + 1

        if token.kind in (TokenKind.IDENT, TokenKind.QUOTED) and descriptor.kind == FieldKind.TEXT:
            text = token.value if token.kind == TokenKind.QUOTED else token.text
            return self.catalog.coerce(key, text), index + 1

        raise MalformedComparisonError(
            f"expected a value for {descriptor.label}, got {token.text!r}", token.text,
        )

    def _comparison(self, key: str, op: Operator, value) -> Predicate:
        if key == "sector":
            if op == Operator.NE:
                return SectorExclude(frozenset([value]))
            return SectorIn(frozenset([value]))
        return Comparison(key, op, value)

    def _value_end(self, index: int) -> int:
        """Index after a malformed value, for skipping."""
        end = index
        while end < len(self.tokens) and self.tokens[end].kind in (
            TokenKind.NUMBER, TokenKind.QUOTED,
        ):
            end += 1
        if end == index and end < len(self.tokens) and self.tokens[end].kind == TokenKind.IDENT:
            end += 1
        return max(end, index)

    # -------------------------------------------------------------------------
    # Sort and limit
    # -------------------------------------------------------------------------

    def _parse_limit(self, keyword: str) -> None:
        self.pos += 1
        token = self._current()

        if token is not None and token.kind == TokenKind.NUMBER:
            count = token.value
            if token.unit or count != count.to_integral_value() or count <= 0:
                self._skip(self.pos - 1, self.pos + 1, "limit must be a whole number")
                return
            self.pos += 1
            self._set_limit(int(count), from_bottom=keyword == "bottom")

            by_field = self._is_keyword(self._current(), "by")
            if by_field:
                self.pos += 1
            match = self._field_at(self.pos)
            if match and (by_field or not self._is_compare(self._at(self.pos + match[1]))):
                key, n = match
                self.pos += n
                if keyword == "bottom":
                    # "bottom 5 by ROE" means the five lowest
                    self.from_bottom = False
                    direction = SortDirection.ASC
                else:
                    direction = SortDirection.DESC
                direction = self._explicit_direction(direction)
                self._set_sort(key, direction)
            return

        match = self._field_at(self.pos)
        if match and not self._is_compare(self._at(self.pos + match[1])):
            key, n = match
            self.pos += n
            default = SortDirection.DESC if keyword == "top" else SortDirection.ASC
            self._set_sort(key, self._explicit_direction(default))

    def _parse_sort_target(self, default: SortDirection) -> None:
        match = self._field_at(self.pos)
        if not match:
            return
        key, n = match
        self.pos += n
        self._set_sort(key, self._explicit_direction(default))

    def _explicit_direction(self, default: SortDirection) -> SortDirection:
        token = self._current()
        if token is not None and token.is_keyword("ascending", "descending"):
            self.pos += 1
            return SortDirection(token.value)
        return default

    def _set_sort(self, key: str, direction: SortDirection) -> None:
        self.sort = SortSpec(key, direction)
        self.clause_count += 1

    def _set_limit(self, count: int, from_bottom: bool) -> None:
        self.limit = count
        self.from_bottom = from_bottom
        self.clause_count += 1

    # -------------------------------------------------------------------------
    # Sectors
    # -------------------------------------------------------------------------

    def _sector_list(self, anchored: bool) -> list[str]:
        """Parse ``sector (, | and | or) sector ... [sector]`` at pos."""
        sectors: list[str] = []
        index = self.pos
        while True:
            token = self._at(index)
            if token is not None and token.kind == TokenKind.IDENT and token.text.lower() == "the":
                index += 1
            match = self._sector_at(index, anchored)
            if match is None:
                break
            sector, n = match
            if sector not in sectors:
                sectors.append(sector)
            index += n
            self.pos = index

            sep = self._at(index)
            if sep is not None and (sep.kind == TokenKind.COMMA or sep.is_keyword("and", "or")):
                if self._sector_at(index + 1, anchored) is not None:
                    index += 1
                    continue
            break

        if sectors:
            self._skip_sector_keyword()
        return sectors

    def _sector_at(self, index: int, anchored: bool) -> Optional[tuple[str, int]]:
        for n in range(MAX_SECTOR_WORDS, 0, -1):
            tokens = self.tokens[index:index + n]
            if len(tokens) < n:
                continue
            if tokens[0].kind == TokenKind.QUOTED:
                if n != 1:
                    continue
                raw = tokens[0].value
            elif all(
                t.kind == TokenKind.IDENT or (i > 0 and t.is_keyword("and"))
                for i, t in enumerate(tokens)
            ):
                raw = " ".join(t.text for t in tokens)
            else:
                continue
            sector = self.catalog.resolve_sector(
                raw, anchored=anchored or self._anchors_sector(index + n),
            )
            if sector:
                return sector, n
        return None

    def _anchors_sector(self, index: int) -> bool:
        token = self._at(index)
        if token is None:
            return False
        if token.is_keyword("sector"):
            return True
        return token.kind == TokenKind.IDENT and token.text.lower() in SECTOR_ANCHOR_WORDS

    def _skip_sector_keyword(self) -> None:
        if self._is_keyword(self._current(), "sector"):
            self.pos += 1

    def _add_include(self, sectors: list[str]) -> None:
        """Sectors joined to a clause by a connective stay in the tree.

        Otherwise they filter the whole query.
        """
        joined = bool(self.items) and self.items[-1] in (_AND, _OR, _LPAREN)
        if joined or self._is_keyword(self._next_meaningful(), "or"):
            self.items.append(SectorIn(frozenset(sectors)))
            self.clause_count += 1
            return
        for sector in sectors:
            if sector not in self.include:
                self.include.append(sector)
        self.clause_count += 1

    def _add_exclude(self, sectors: list[str]) -> None:
        for sector in sectors:
            if sector not in self.exclude:
                self.exclude.append(sector)
        self.clause_count += 1

    # -------------------------------------------------------------------------
    # Token helpers
    # -------------------------------------------------------------------------

    def _field_at(self, index: int) -> Optional[tuple[str, int]]:
        """Longest field name starting at ``index``."""
        return self._longest(index, MAX_FIELD_WORDS, self.catalog.resolve)

    def _longest(
        self,
        index: int,
        max_words: int,
        resolver: Callable[[str], Optional[str]],
    ) -> Optional[tuple[str, int]]:
        for n in range(max_words, 0, -1):
            words = self._words(index, n)
            if words is None:
                continue
            resolved = resolver(" ".join(words))
            if resolved:
                return resolved, n
        return None

    def _words(self, index: int, n: int) -> Optional[list[str]]:
        """Lower-cased texts of ``n`` tokens usable inside a name."""
        tokens = self.tokens[index:index + n]
        if len(tokens) < n or not tokens or tokens[0].kind != TokenKind.IDENT:
            return None
        for token in tokens[1:]:
            if token.kind not in (TokenKind.IDENT, TokenKind.KEYWORD):
                return None
        return [t.text.lower() for t in tokens]

    def _current(self) -> Optional[Token]:
        return self._at(self.pos)

    def _next_meaningful(self) -> Optional[Token]:
        """First token from pos that is not a filler word."""
        index = self.pos
        while True:
            token = self._at(index)
            if token is None or not (
                token.kind == TokenKind.IDENT and token.text.lower() in FILLER_WORDS
            ):
                return token
            index += 1

    def _peek(self, offset: int) -> Optional[Token]:
        return self._at(self.pos + offset)

    def _at(self, index: int) -> Optional[Token]:
        if 0 <= index < len(self.tokens):
            return self.tokens[index]
        return None

    @staticmethod
    def _is_compare(token: Optional[Token]) -> bool:
        return token is not None and token.kind == TokenKind.COMPARE_OP

    @staticmethod
    def _is_keyword(token: Optional[Token], *names: str) -> bool:
        return token is not None and token.is_keyword(*names)

    def _text(self, start: int, end: int) -> str:
        return " ".join(t.text for t in self.tokens[start:end])

    def _skip(self, start: int, end: int, reason: str) -> None:
        end = max(end, start + 1)
        text = self._text(start, end)
        logger.debug(f"Skipping {text!r}: {reason}")
        self.skipped.append(SkippedClause(text, reason))
        self.pos = end

    def _add_heuristic(self, phrase: str, predicate: Predicate) -> None:
        logger.debug(f"Heuristic {phrase!r} -> {predicate!r}")
        self.heuristics.append(HeuristicMatch(phrase, predicate))
        self.items.append(predicate)
        self.clause_count += 1


# =============================================================================
# Boolean structure
# =============================================================================

class _BooleanBuilder:
    """Builds the predicate tree from scanned clause items.

    ``and`` binds tighter than ``or``; adjacent clauses are conjoined;
    connectives with nothing on one side are dropped.
    """

    def __init__(self, items: list):
        self.items = items
        self.pos = 0

    def build(self) -> Predicate:
        result = None
        while self.pos < len(self.items):
            node = self._parse_or()
            if node is not None:
                result = node if result is None else conjoin(result, node)
            elif self._current() == _RPAREN:
                self.pos += 1  # unbalanced ")"
        return result if result is not None else TRUE

    def _current(self):
        if self.pos < len(self.items):
            return self.items[self.pos]
        return None

    def _parse_or(self) -> Optional[Predicate]:
        left = self._parse_and()
        while self._current() == _OR:
            self.pos += 1
            right = self._parse_and()
            if right is None:
                continue
            left = right if left is None else disjoin(left, right)
        return left

    def _parse_and(self) -> Optional[Predicate]:
        left = self._parse_primary()
        while True:
            current = self._current()
            if current == _AND:
                self.pos += 1
            elif not (isinstance(current, Predicate) or current == _LPAREN):
                break
            right = self._parse_primary()
            if right is None:
                continue
            left = right if left is None else conjoin(left, right)
        return left

    def _parse_primary(self) -> Optional[Predicate]:
        current = self._current()
        if isinstance(current, Predicate):
            self.pos += 1
            return current
        if current == _LPAREN:
            self.pos += 1
            inner = self._parse_or()
            if self._current() == _RPAREN:
                self.pos += 1
            return inner
        return None
