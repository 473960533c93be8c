"""Natural Language Screener Configuration.

Enums, constants, and configuration for the query engine.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# =============================================================================
# Enums
# =============================================================================

class FieldKind(str, Enum):
    """Kind of a queryable field; decides unit parsing and rendering."""
    NUMERIC = "numeric"         # Plain quantity (volume, RSI, beta)
    PERCENTAGE = "percentage"   # Stored as a fraction, typed as percent
    CURRENCY = "currency"       # Base currency units
    RATIO = "ratio"             # Dimensionless multiple (P/E, D/E)
    ENUM_SECTOR = "enum_sector"
    TEXT = "text"


class Operator(str, Enum):
    """Comparison operator."""
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    EQ = "="
    NE = "!="
    BETWEEN = "between"


class SortDirection(str, Enum):
    """Sort direction."""
    ASC = "ascending"
    DESC = "descending"


class IntentKind(str, Enum):
    """What the user asked for."""
    NEW_SCREEN = "new_screen"
    REFINEMENT = "refinement"
    HELP = "help"
    CLEAR_CONTEXT = "clear_context"


class ResponseType(str, Enum):
    """Screener response type."""
    SCREENER = "screener"
    HELP = "help"
    ERROR = "error"


class CurrencyStyle(str, Enum):
    """Magnitude suffixes used when rendering large values."""
    WESTERN = "western"   # K, M, B, T
    INDIAN = "indian"     # L, Cr


# =============================================================================
# Constants
# =============================================================================

NUMERIC_OPERATORS = frozenset({
    Operator.LT, Operator.LTE, Operator.GT, Operator.GTE,
    Operator.EQ, Operator.NE, Operator.BETWEEN,
})
EQUALITY_OPERATORS = frozenset({Operator.EQ, Operator.NE})

# Magnitude suffixes, canonical spelling -> multiplier
MAGNITUDE_SUFFIXES = {
    "K": 10 ** 3,
    "L": 10 ** 5,      # lakh
    "M": 10 ** 6,
    "Cr": 10 ** 7,     # crore
    "B": 10 ** 9,
    "T": 10 ** 12,
}

# Spelling variants accepted after a number
SUFFIX_SPELLINGS = {
    "k": "K", "thousand": "K",
    "l": "L", "lakh": "L", "lakhs": "L", "lac": "L", "lacs": "L",
    "m": "M", "mn": "M", "mm": "M", "million": "M",
    "cr": "Cr", "crore": "Cr", "crores": "Cr",
    "b": "B", "bn": "B", "billion": "B",
    "t": "T", "tn": "T", "trillion": "T",
}

RENDER_SUFFIXES = {
    CurrencyStyle.WESTERN: ["T", "B", "M", "K"],
    CurrencyStyle.INDIAN: ["Cr", "L"],
}

# Canonical sector names
SECTORS = [
    "IT",
    "Banking",
    "Financials",
    "Pharma",
    "Healthcare",
    "Biotech",
    "FMCG",
    "Consumer Discretionary",
    "Auto",
    "Energy",
    "Oil & Gas",
    "Power",
    "Utilities",
    "Metals",
    "Materials",
    "Chemicals",
    "Cement",
    "Industrials",
    "Infrastructure",
    "Real Estate",
    "Telecom",
    "Media",
]

# Each alias maps to exactly one sector
SECTOR_ALIASES = {
    "IT": ["it", "tech", "technology", "software", "information technology", "it services"],
    "Banking": ["bank", "banks", "banking"],
    "Financials": ["finance", "financial", "financial services", "nbfc", "nbfcs", "insurance"],
    "Pharma": ["pharma", "pharmaceutical", "pharmaceuticals", "drug", "drugs"],
    "Healthcare": ["health", "health care", "hospital", "hospitals"],
    "Biotech": ["biotechnology", "bio"],
    "FMCG": ["fmcg", "staples", "consumer staples", "food"],
    "Consumer Discretionary": ["consumer", "discretionary", "retail"],
    "Auto": ["auto", "autos", "automobile", "automobiles", "automotive", "ev", "evs"],
    "Energy": ["energy", "renewables"],
    "Oil & Gas": ["oil", "gas", "oil and gas", "oil & gas", "petroleum"],
    "Power": ["power", "electricity"],
    "Utilities": ["utility", "utilities"],
    "Metals": ["metal", "metals", "steel", "mining"],
    "Materials": ["material", "materials"],
    "Chemicals": ["chemical", "chemicals", "specialty chemicals"],
    "Cement": ["cement"],
    "Industrials": ["industrial", "industrials", "manufacturing", "capital goods"],
    "Infrastructure": ["infra", "infrastructure"],
    "Real Estate": ["realty", "real estate", "property", "housing"],
    "Telecom": ["telecom", "telecommunication", "telecommunications"],
    "Media": ["media", "entertainment"],
}

# Sector words that are also ordinary English and only count as a sector
# when written in upper case or anchored by a sector keyword
AMBIGUOUS_SECTOR_WORDS = frozenset({"it"})

# Default display columns
DEFAULT_COLUMNS = [
    "symbol",
    "name",
    "sector",
    "price",
    "changePct",
    "mcap",
    "pe",
]

# Referencing one of the keys pulls in the related columns
RELATED_COLUMNS = [
    (("pe", "pb"), ["pe", "pb", "ps"]),
    (("roe", "roa"), ["roe", "roa", "roce"]),
    (("return1y", "return3y", "cagr3y", "return1m", "return3m", "return6m"),
     ["return1y", "return3y", "cagr3y"]),
    (("volume", "avgVolume20d", "volumeChange5d"),
     ["volume", "avgVolume20d", "volumeChange5d"]),
]

# Words that carry no screening meaning and are dropped silently
FILLER_WORDS = frozenset({
    "a", "an", "the", "all", "any", "me", "my", "us", "please", "pls",
    "show", "showing", "list", "find", "get", "give", "display", "fetch",
    "screen", "screening", "filter", "search", "looking", "look", "want",
    "stock", "stocks", "share", "shares", "company", "companies", "equity",
    "equities", "security", "securities", "names", "scrips", "ones",
    "with", "having", "have", "has", "that", "which", "who", "whose",
    "where", "is", "are", "be", "of", "for", "on", "at", "to", "from",
    "only", "just", "also", "some", "i", "can", "you", "what", "whats",
    "ratio", "value", "than", "then", "its", "their", "them", "those",
    "these", "sorted", "sort", "ordered", "order", "limited", "limit",
    "space", "industry", "segment", "results", "previous", "refine",
    "refining", "refinement", "now", "and", "or", "by", "add", "adding",
})

# Example queries offered when input cannot be understood
EXAMPLE_QUERIES = [
    'Try: "stocks with PE < 15 and ROE > 20%"',
    'Try: "energy sector Mcap > $5B"',
    'Try: "IT stocks with low PE, top 10 by market cap"',
    'Type "help" for the full syntax guide',
]


# =============================================================================
# Configuration Dataclasses
# =============================================================================

@dataclass
class ScreenerConfig:
    """Query engine configuration."""
    max_results: int = 500
    history_size: int = 20
    large_result_threshold: int = 50
    max_columns: int = 12
    currency_style: CurrencyStyle = CurrencyStyle.WESTERN
    slow_threshold_ms: float = 250.0

    @classmethod
    def from_settings(cls, settings: Optional[object] = None) -> "ScreenerConfig":
        """Build a config from the process settings."""
        if settings is None:
            from src.settings import get_settings
            settings = get_settings()
        return cls(
            max_results=settings.max_results,
            history_size=settings.history_size,
            large_result_threshold=settings.large_result_threshold,
            max_columns=settings.max_columns,
            currency_style=CurrencyStyle(settings.currency_style),
            slow_threshold_ms=settings.slow_query_ms,
        )


DEFAULT_SCREENER_CONFIG = ScreenerConfig()
