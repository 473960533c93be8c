"""Query Lexer.

Splits loosely structured screener text into tokens. Lexing never fails:
unknown words become identifiers and stray punctuation is dropped, so
prose around the clauses does not break parsing.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
import logging

from src.nlscreen.config import Operator, SUFFIX_SPELLINGS

logger = logging.getLogger(__name__)


class TokenKind(str, Enum):
    """Token kind."""
    IDENT = "ident"
    NUMBER = "number"
    COMPARE_OP = "compare_op"
    KEYWORD = "keyword"
    QUOTED = "quoted"
    REFINEMENT = "refinement"
    COMMA = "comma"
    LPAREN = "lparen"
    RPAREN = "rparen"


@dataclass(frozen=True)
class Token:
    """A lexed token.

    ``value`` is a ``Decimal`` for numbers, an ``Operator`` for comparison
    operators, the canonical keyword for keywords, the ``+N`` index for a
    refinement prefix, and the raw text otherwise.
    """
    kind: TokenKind
    value: Any
    text: str
    unit: Optional[str] = None
    currency: bool = False
    position: int = 0

    def is_keyword(self, *names: str) -> bool:
        return self.kind == TokenKind.KEYWORD and self.value in names


# Keyword spellings -> canonical keyword
KEYWORDS = {
    "and": "and", "&&": "and", "plus": "and",
    "or": "or",
    "in": "in", "within": "in",
    "exclude": "exclude", "excluding": "exclude", "excludes": "exclude",
    "except": "exclude", "not": "exclude", "without": "exclude",
    "omit": "exclude", "remove": "exclude", "minus": "exclude",
    "ex": "exclude", "excl": "exclude", "drop": "exclude", "non": "exclude",
    "top": "top", "first": "top",
    "bottom": "bottom",
    "ascending": "ascending", "asc": "ascending",
    "descending": "descending", "desc": "descending",
    "sector": "sector", "sectors": "sector",
    "help": "help", "syntax": "help",
    "clear": "clear", "reset": "clear",
    "sort": "sort", "sorted": "sort", "order": "sort", "ordered": "sort",
    "rank": "sort", "ranked": "sort",
    "by": "by",
}

COMPARE_WORDS = {
    "not equal to": Operator.NE,
    "greater than or equal to": Operator.GTE,
    "less than or equal to": Operator.LTE,
    "greater than": Operator.GT,
    "more than": Operator.GT,
    "higher than": Operator.GT,
    "less than": Operator.LT,
    "lower than": Operator.LT,
    "fewer than": Operator.LT,
    "at least": Operator.GTE,
    "at most": Operator.LTE,
    "no more than": Operator.LTE,
    "no less than": Operator.GTE,
    "up to": Operator.LTE,
    "upto": Operator.LTE,
    "equal to": Operator.EQ,
    "equals": Operator.EQ,
    "exceeds": Operator.GT,
    "exceeding": Operator.GT,
    "above": Operator.GT,
    "over": Operator.GT,
    "below": Operator.LT,
    "under": Operator.LT,
    "between": Operator.BETWEEN,
}

COMPARE_SYMBOLS = {
    ">=": Operator.GTE, "=>": Operator.GTE, "≥": Operator.GTE,
    "<=": Operator.LTE, "=<": Operator.LTE, "≤": Operator.LTE,
    "==": Operator.EQ, "=": Operator.EQ,
    "!=": Operator.NE, "<>": Operator.NE, "≠": Operator.NE,
    ">": Operator.GT, "<": Operator.LT,
}

_WORD_SUFFIXES = sorted(
    (s for s in SUFFIX_SPELLINGS if len(s) > 1), key=len, reverse=True,
)
_COMPARE_WORDS = sorted(COMPARE_WORDS, key=len, reverse=True)


class Lexer:
    """Tokenizes screener queries.

    Example:
        tokens = Lexer().tokenize("Mcap > $5B and ROE >= 20%")
    """

    TOKEN_PATTERNS = [
        (r"\s+", "WHITESPACE"),
        (r'"(?P<dq>[^"]*)"|“(?P<cq>[^”]*)”|(?<![a-z0-9])\'(?P<sq>[^\']+)\'(?![a-z0-9])', "QUOTED"),
        (
            r"(?P<cur>\$|₹|rs\.?\s?|inr\s?)?"
            r"(?P<num>[+-]?(?:\d{1,3}(?:,\d{2,3})+|\d+)(?:\.\d+)?|[+-]?\.\d+)"
            r"(?:\s*(?P<pct>%|percent\b|pct\b)"
            r"|(?P<sfx>[klmbtx])(?![a-z0-9_])"
            r"|\s?(?P<wsfx>" + "|".join(_WORD_SUFFIXES) + r")\b)?"
            r"(?![a-z0-9_])",
            "NUMBER",
        ),
        (r">=|<=|=>|=<|==|!=|<>|[≥≤≠<>=]", "COMPARE_SYMBOL"),
        (
            r"(?:" + "|".join(w.replace(" ", r"\s+") for w in _COMPARE_WORDS) + r")\b",
            "COMPARE_WORD",
        ),
        (r"[a-z0-9_][a-z0-9_/&\-]*", "WORD"),
        (r"&&|&", "AMPERSAND"),
        (r",", "COMMA"),
        (r"\(", "LPAREN"),
        (r"\)", "RPAREN"),
    ]

    _REFINEMENT = re.compile(r"\s*\+(\d+)(?=\s|$)")

    def __init__(self):
        self._token_regex = re.compile(
            "|".join(f"(?P<{name}>{pattern})" for pattern, name in self.TOKEN_PATTERNS),
            re.IGNORECASE,
        )

    def tokenize(self, text: str) -> list[Token]:
        """Tokenize query text.

        Args:
            text: Raw query.

        Returns:
            Tokens in input order. Unrecognized characters are skipped.
        """
        tokens: list[Token] = []
        pos = 0

        match = self._REFINEMENT.match(text)
        if match:
            tokens.append(Token(
                TokenKind.REFINEMENT, int(match.group(1)), match.group(0).strip(),
                position=match.start(1) - 1,
            ))
            pos = match.end()

        while pos < len(text):
            match = self._token_regex.match(text, pos)
            if not match:
                logger.debug(f"Skipping character {text[pos]!r} at {pos}")
                pos += 1
                continue

            token = self._make_token(match)
            if token is not None:
                tokens.append(token)
            pos = match.end()

        return tokens

    def _make_token(self, match: re.Match) -> Optional[Token]:
        kind = match.lastgroup
        raw = match.group(kind)
        start = match.start()

        if kind == "WHITESPACE":
            return None

        if kind == "QUOTED":
            phrase = match.group("dq")
            if phrase is None:
                phrase = match.group("cq")
            if phrase is None:
                phrase = match.group("sq")
            return Token(TokenKind.QUOTED, phrase.strip(), raw, position=start)

        if kind == "NUMBER":
            return self._number_token(match, raw, start)

        if kind == "COMPARE_SYMBOL":
            return Token(TokenKind.COMPARE_OP, COMPARE_SYMBOLS[raw], raw, position=start)

        if kind == "COMPARE_WORD":
            phrase = " ".join(raw.lower().split())
            return Token(TokenKind.COMPARE_OP, COMPARE_WORDS[phrase], raw, position=start)

        if kind in ("WORD", "AMPERSAND"):
            keyword = KEYWORDS.get(raw.lower())
            if keyword:
                return Token(TokenKind.KEYWORD, keyword, raw, position=start)
            return Token(TokenKind.IDENT, raw, raw, position=start)

        if kind == "COMMA":
            return Token(TokenKind.COMMA, raw, raw, position=start)
        if kind == "LPAREN":
            return Token(TokenKind.LPAREN, raw, raw, position=start)
        if kind == "RPAREN":
            return Token(TokenKind.RPAREN, raw, raw, position=start)

        return None

    def _number_token(self, match: re.Match, raw: str, start: int) -> Token:
        value = Decimal(match.group("num").replace(",", ""))
        unit = None
        if match.group("pct"):
            unit = "%"
        elif match.group("sfx"):
            suffix = match.group("sfx").lower()
            unit = "x" if suffix == "x" else SUFFIX_SPELLINGS[suffix]
        elif match.group("wsfx"):
            unit = SUFFIX_SPELLINGS[match.group("wsfx").lower()]

        return Token(
            TokenKind.NUMBER,
            value,
            raw.strip(),
            unit=unit,
            currency=bool(match.group("cur")),
            position=start,
        )


def tokenize(text: str) -> list[Token]:
    """Tokenize with a default lexer."""
    return _DEFAULT_LEXER.tokenize(text)


_DEFAULT_LEXER = Lexer()
