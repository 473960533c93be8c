"""Natural Language Stock Screener.

Loosely structured queries ("IT stocks with PE < 15 and ROE > 20%,
top 10 by market cap") screened over an in-memory universe, with
session refinements ("+1 exclude Pharma").

Example:
    from src.nlscreen import new_screener, Security

    screener = new_screener(lambda: securities)
    response = screener.query("IT sector PE < 15")
    print(response.interpretation, response.total)
    response = screener.query("+1 top 5")
"""

from src.nlscreen.config import (
    FieldKind,
    Operator,
    SortDirection,
    IntentKind,
    ResponseType,
    CurrencyStyle,
    SECTORS,
    DEFAULT_COLUMNS,
    EXAMPLE_QUERIES,
    ScreenerConfig,
    DEFAULT_SCREENER_CONFIG,
)

from src.nlscreen.errors import (
    ErrorCode,
    ScreenerError,
    ParseError,
    UnknownFieldError,
    UnknownSectorError,
    UnitMismatchError,
    MalformedComparisonError,
    EmptyQueryError,
    NoContextToRefineError,
    EngineError,
)

from src.nlscreen.models import (
    Security,
    FieldDescriptor,
    Predicate,
    TruePredicate,
    Comparison,
    SectorIn,
    SectorExclude,
    And,
    Or,
    TRUE,
    negate,
    SortSpec,
    QueryPlan,
    QueryIntent,
    SkippedClause,
    HeuristicMatch,
    SessionContext,
    ScreenerResponse,
)

from src.nlscreen.catalog import FieldCatalog, FIELD_CATALOG
from src.nlscreen.lexer import Lexer, Token, TokenKind, tokenize
from src.nlscreen.parser import QueryParser, ParseResult
from src.nlscreen.refinement import RefinementResolver, ResolvedPlan
from src.nlscreen.engine import ExecutionEngine, ExecutionResult, ClauseSelectivity
from src.nlscreen.interpret import Interpreter
from src.nlscreen.screener import Screener, new_screener
from src.nlscreen.universe import universe_from_frame, results_to_frame


__all__ = [
    # Config
    "FieldKind",
    "Operator",
    "SortDirection",
    "IntentKind",
    "ResponseType",
    "CurrencyStyle",
    "SECTORS",
    "DEFAULT_COLUMNS",
    "EXAMPLE_QUERIES",
    "ScreenerConfig",
    "DEFAULT_SCREENER_CONFIG",
    # Errors
    "ErrorCode",
    "ScreenerError",
    "ParseError",
    "UnknownFieldError",
    "UnknownSectorError",
    "UnitMismatchError",
    "MalformedComparisonError",
    "EmptyQueryError",
    "NoContextToRefineError",
    "EngineError",
    # Models
    "Security",
    "FieldDescriptor",
    "Predicate",
    "TruePredicate",
    "Comparison",
    "SectorIn",
    "SectorExclude",
    "And",
    "Or",
    "TRUE",
    "negate",
    "SortSpec",
    "QueryPlan",
    "QueryIntent",
    "SkippedClause",
    "HeuristicMatch",
    "SessionContext",
    "ScreenerResponse",
    # Catalog
    "FieldCatalog",
    "FIELD_CATALOG",
    # Pipeline
    "Lexer",
    "Token",
    "TokenKind",
    "tokenize",
    "QueryParser",
    "ParseResult",
    "RefinementResolver",
    "ResolvedPlan",
    "ExecutionEngine",
    "ExecutionResult",
    "ClauseSelectivity",
    "Interpreter",
    # Facade
    "Screener",
    "new_screener",
    # pandas
    "universe_from_frame",
    "results_to_frame",
]
