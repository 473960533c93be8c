"""Screener Exception Hierarchy.

Parse errors are recovered inside the engine (skip-and-continue) and
turned into user-visible responses. Only ``EngineError`` escapes the
facade, since it signals a catalog or plan invariant violation rather
than bad user input.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Standardized screener error codes."""

    # Parse errors
    UNKNOWN_FIELD = "UNKNOWN_FIELD"
    UNKNOWN_SECTOR = "UNKNOWN_SECTOR"
    UNIT_MISMATCH = "UNIT_MISMATCH"
    MALFORMED_COMPARISON = "MALFORMED_COMPARISON"
    EMPTY_QUERY = "EMPTY_QUERY"

    # Context errors
    NO_CONTEXT_TO_REFINE = "NO_CONTEXT_TO_REFINE"

    # Engine errors
    ENGINE_ERROR = "ENGINE_ERROR"


class ScreenerError(Exception):
    """Base exception for all screener errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.ENGINE_ERROR,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or []


class ParseError(ScreenerError):
    """Raised when part of a query cannot be understood."""

    def __init__(
        self,
        message: str = "Could not parse query",
        error_code: ErrorCode = ErrorCode.MALFORMED_COMPARISON,
        term: Optional[str] = None,
    ):
        details = [{"term": term}] if term else []
        super().__init__(message, error_code, details)
        self.term = term


class UnknownFieldError(ParseError):
    """Raised when a term does not name a catalog field."""

    def __init__(self, term: str):
        super().__init__(f"Unknown field: {term}", ErrorCode.UNKNOWN_FIELD, term)


class UnknownSectorError(ParseError):
    """Raised when a term does not name a known sector."""

    def __init__(self, term: str):
        super().__init__(f"Unknown sector: {term}", ErrorCode.UNKNOWN_SECTOR, term)


class UnitMismatchError(ParseError):
    """Raised when a literal's unit does not fit the field kind."""

    def __init__(self, field: str, unit: str):
        super().__init__(
            f"Unit '{unit}' cannot be applied to {field}",
            ErrorCode.UNIT_MISMATCH,
            unit,
        )
        self.field = field
        self.unit = unit


class MalformedComparisonError(ParseError):
    """Raised when a comparison is missing its operator or value."""

    def __init__(self, message: str, term: Optional[str] = None):
        super().__init__(message, ErrorCode.MALFORMED_COMPARISON, term)


class EmptyQueryError(ParseError):
    """Raised when no clause of the query could be parsed."""

    def __init__(self, text: str = ""):
        super().__init__(
            "No screening clause could be understood",
            ErrorCode.EMPTY_QUERY,
            text or None,
        )


class NoContextToRefineError(ScreenerError):
    """Raised when a refinement arrives with no previous screen."""

    def __init__(self, ref_index: int = 1):
        super().__init__(
            f"Nothing to refine with +{ref_index}: run a screen first",
            ErrorCode.NO_CONTEXT_TO_REFINE,
        )
        self.ref_index = ref_index


class EngineError(ScreenerError):
    """Raised when a plan violates a catalog or engine invariant."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = [{"field": field}] if field else []
        super().__init__(message, ErrorCode.ENGINE_ERROR, details)
        self.field = field
