"""Field Catalog.

Registry of queryable fields, their aliases and units, the sector
vocabulary, and the qualitative heuristic table.
"""

import math
import operator
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Union
import logging

from src.nlscreen.config import (
    FieldKind,
    Operator,
    SortDirection,
    NUMERIC_OPERATORS,
    EQUALITY_OPERATORS,
    MAGNITUDE_SUFFIXES,
    SECTORS,
    SECTOR_ALIASES,
    AMBIGUOUS_SECTOR_WORDS,
)
from src.nlscreen.errors import (
    EngineError,
    UnitMismatchError,
    UnknownFieldError,
    UnknownSectorError,
)
from src.nlscreen.models import (
    Comparison,
    FieldDescriptor,
    Security,
    SECURITY_ATTRS,
)

logger = logging.getLogger(__name__)

_FUZZY_STRIP = re.compile(r"[\s_\-/.]+")

COMPARATORS: dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.LT: operator.lt,
    Operator.LTE: operator.le,
    Operator.GT: operator.gt,
    Operator.GTE: operator.ge,
    Operator.EQ: operator.eq,
    Operator.NE: operator.ne,
}


# =============================================================================
# Qualitative Heuristics
# =============================================================================

# "<qualifier> <field>" -> direction; "good" and "bad" follow the field's
# favorable side
QUALIFIER_WORDS: dict[str, str] = {
    "low": "low", "lower": "low", "small": "low", "little": "low", "less": "low",
    "high": "high", "higher": "high", "large": "high", "big": "high",
    "huge": "high", "more": "high",
    "good": "good", "strong": "good", "healthy": "good", "great": "good",
    "solid": "good", "decent": "good", "better": "good", "excellent": "good",
    "poor": "bad", "weak": "bad", "bad": "bad",
}

# Standalone phrases -> comparisons; a ``None`` value uses the field's
# default threshold
HEURISTIC_PHRASES: dict[str, list[tuple[str, Operator, Optional[float]]]] = {
    "cheap": [("pe", Operator.LT, None)],
    "undervalued": [("pe", Operator.LT, None)],
    "expensive": [("pe", Operator.GT, None)],
    "overvalued": [("pe", Operator.GT, None)],
    "profitable": [("roe", Operator.GT, None)],
    "dividend paying": [("dividendYield", Operator.GT, 0.0)],
    "debt free": [("debtToEquity", Operator.LT, 0.1)],
    "debtfree": [("debtToEquity", Operator.LT, 0.1)],
    "large cap": [("mcap", Operator.GTE, 200_000_000_000)],
    "largecap": [("mcap", Operator.GTE, 200_000_000_000)],
    "bluechip": [("mcap", Operator.GTE, 200_000_000_000)],
    "blue chip": [("mcap", Operator.GTE, 200_000_000_000)],
    "mid cap": [("mcap", Operator.GTE, 50_000_000_000), ("mcap", Operator.LT, 200_000_000_000)],
    "midcap": [("mcap", Operator.GTE, 50_000_000_000), ("mcap", Operator.LT, 200_000_000_000)],
    "small cap": [("mcap", Operator.LT, 50_000_000_000)],
    "smallcap": [("mcap", Operator.LT, 50_000_000_000)],
    "oversold": [("rsi", Operator.LT, 30.0)],
    "overbought": [("rsi", Operator.GT, 70.0)],
    "volume dropping": [("volumeChange5d", Operator.LT, 0.0)],
    "volume falling": [("volumeChange5d", Operator.LT, 0.0)],
    "volume decreasing": [("volumeChange5d", Operator.LT, 0.0)],
    "decreasing volume": [("volumeChange5d", Operator.LT, 0.0)],
    "falling volume": [("volumeChange5d", Operator.LT, 0.0)],
    "volume rising": [("volumeChange5d", Operator.GT, 0.0)],
    "volume increasing": [("volumeChange5d", Operator.GT, 0.0)],
    "increasing volume": [("volumeChange5d", Operator.GT, 0.0)],
    "rising volume": [("volumeChange5d", Operator.GT, 0.0)],
}

HEURISTIC_MAX_WORDS = max(len(p.split()) for p in HEURISTIC_PHRASES)

# "<superlative> <phrase>" -> sort; the direction is for "biggest" and
# flips for "smallest"
SORT_PHRASES: dict[str, tuple[str, SortDirection]] = {
    "volume drop": ("volumeChange5d", SortDirection.ASC),
    "volume fall": ("volumeChange5d", SortDirection.ASC),
    "volume decline": ("volumeChange5d", SortDirection.ASC),
    "volume rise": ("volumeChange5d", SortDirection.DESC),
    "volume gain": ("volumeChange5d", SortDirection.DESC),
    "volume spike": ("volumeChange5d", SortDirection.DESC),
}

SORT_PHRASE_MAX_WORDS = max(len(p.split()) for p in SORT_PHRASES)


class FieldCatalog:
    """Registry of queryable fields.

    Resolves user-facing names to field keys, converts literals to
    canonical units, and evaluates comparisons against securities.

    Example:
        catalog = FieldCatalog()
        catalog.resolve("market cap")            # "mcap"
        catalog.coerce("mcap", Decimal("5"), "B") # 5_000_000_000
    """

    def __init__(self):
        self._fields: dict[str, FieldDescriptor] = {}
        self._names: dict[str, str] = {}
        self._fuzzy: dict[str, str] = {}
        self._sectors: dict[str, str] = {}
        self._register_builtin_fields()
        self._register_sectors()

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(self, descriptor: FieldDescriptor) -> None:
        """Register a field; every name may map to one key only."""
        if descriptor.key in self._fields:
            raise ValueError(f"Duplicate field key: {descriptor.key}")
        if descriptor.attr not in SECURITY_ATTRS:
            raise ValueError(f"Security has no attribute {descriptor.attr!r}")

        names = {descriptor.key.lower(), descriptor.label.lower()} | {
            a.lower() for a in descriptor.aliases
        }
        for name in names:
            owner = self._names.get(name)
            if owner and owner != descriptor.key:
                raise ValueError(f"Alias {name!r} already maps to {owner}")
            fuzzy = _fuzzy(name)
            owner = self._fuzzy.get(fuzzy)
            if owner and owner != descriptor.key:
                raise ValueError(f"Alias {name!r} collides with {owner}")

        for name in names:
            self._names[name] = descriptor.key
            self._fuzzy[_fuzzy(name)] = descriptor.key
        self._fields[descriptor.key] = descriptor

    def _register_sectors(self) -> None:
        for sector in SECTORS:
            self._sectors[sector.lower()] = sector
        for sector, aliases in SECTOR_ALIASES.items():
            for alias in aliases:
                owner = self._sectors.get(alias)
                if owner and owner != sector:
                    raise ValueError(f"Sector alias {alias!r} already maps to {owner}")
                self._sectors[alias] = sector

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_field(self, key: str) -> Optional[FieldDescriptor]:
        """Get a field by key."""
        return self._fields.get(key)

    def require(self, key: str) -> FieldDescriptor:
        """Get a field by key; a missing key is a plan invariant violation."""
        descriptor = self._fields.get(key)
        if descriptor is None:
            raise EngineError(f"Field not in catalog: {key}", field=key)
        return descriptor

    def get_all_fields(self) -> list[FieldDescriptor]:
        """Get all registered fields, in registration order."""
        return list(self._fields.values())

    def order_of(self, key: str) -> int:
        """Registration position of a field (unknown keys sort last)."""
        keys = list(self._fields)
        return keys.index(key) if key in keys else len(keys)

    def resolve(self, token: str) -> Optional[str]:
        """Resolve a field name or alias, case-insensitively."""
        normalized = token.lower().strip()
        if not normalized:
            return None
        if normalized in self._names:
            return self._names[normalized]
        return self._fuzzy.get(_fuzzy(normalized))

    def resolve_sector(self, term: str, anchored: bool = False) -> Optional[str]:
        """Resolve a sector name or alias to its canonical name.

        Words in ``AMBIGUOUS_SECTOR_WORDS`` ("it") only count when written
        in upper case or when ``anchored`` by a sector keyword.
        """
        normalized = " ".join(term.lower().split())
        if normalized in AMBIGUOUS_SECTOR_WORDS and not anchored and not term.isupper():
            return None
        return self._sectors.get(normalized)

    def normalize_sector(self, raw: Optional[str]) -> str:
        """Canonical sector for a security's sector string."""
        if not raw:
            return ""
        return self._sectors.get(" ".join(raw.lower().split()), raw.strip())

    # -------------------------------------------------------------------------
    # Coercion
    # -------------------------------------------------------------------------

    def coerce(
        self,
        field_key: str,
        raw_value: Union[Decimal, str],
        raw_unit: Optional[str] = None,
        currency: bool = False,
    ) -> Any:
        """Convert a user literal to the field's canonical units.

        Args:
            field_key: Catalog key.
            raw_value: Number (as ``Decimal``) or text.
            raw_unit: ``%``, ``x``, or a magnitude suffix (K, L, M, Cr, B, T).
            currency: Whether a currency marker ($, ₹, Rs) was present.

        Returns:
            Percentages as fractions, currency and plain numbers in base
            units (``int`` when integral), ratios as ``float``, sectors
            as canonical names.

        Raises:
            UnknownFieldError: Key not in the catalog.
            UnitMismatchError: Unit does not fit the field kind.
            UnknownSectorError: Sector value not recognised.
        """
        descriptor = self._fields.get(field_key)
        if descriptor is None:
            raise UnknownFieldError(field_key)

        if descriptor.kind == FieldKind.ENUM_SECTOR:
            if not isinstance(raw_value, str):
                raise UnitMismatchError(descriptor.label, "number")
            sector = self.resolve_sector(raw_value, anchored=True)
            if sector is None:
                raise UnknownSectorError(raw_value)
            return sector

        if descriptor.kind == FieldKind.TEXT:
            if raw_unit or currency:
                raise UnitMismatchError(descriptor.label, raw_unit or "currency")
            text = str(raw_value).strip()
            return text.upper() if descriptor.key == "symbol" else text

        if isinstance(raw_value, str):
            try:
                raw_value = Decimal(raw_value.replace(",", ""))
            except InvalidOperation:
                raise UnitMismatchError(descriptor.label, "text")

        kind = descriptor.kind
        if kind == FieldKind.PERCENTAGE:
            if currency or (raw_unit and raw_unit != "%"):
                raise UnitMismatchError(descriptor.label, raw_unit or "currency")
            return float(raw_value / 100)

        if kind == FieldKind.RATIO:
            if currency or (raw_unit and raw_unit != "x"):
                raise UnitMismatchError(descriptor.label, raw_unit or "currency")
            return float(raw_value)

        # Currency and plain numeric quantities
        if raw_unit in ("%", "x"):
            raise UnitMismatchError(descriptor.label, raw_unit)
        if currency and kind != FieldKind.CURRENCY:
            raise UnitMismatchError(descriptor.label, "currency")
        if raw_unit:
            raw_value = raw_value * MAGNITUDE_SUFFIXES[raw_unit]
        if raw_value == raw_value.to_integral_value():
            return int(raw_value)
        return float(raw_value)

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def check_operator(self, field_key: str, op: Operator) -> None:
        """Ensure ``op`` is allowed on the field."""
        descriptor = self.require(field_key)
        if op not in descriptor.comparable_ops:
            raise EngineError(
                f"Operator {op.value} not supported for {descriptor.label}",
                field=field_key,
            )

    def compare(self, comparison: Comparison, security: Security) -> bool:
        """Evaluate a comparison; missing values never match."""
        descriptor = self.require(comparison.field)
        actual = descriptor.read(security)
        if actual is None:
            return False
        if isinstance(actual, float) and math.isnan(actual):
            return False

        comparator = COMPARATORS.get(comparison.op)
        if comparator is None:
            raise EngineError(
                f"Operator {comparison.op.value} cannot be evaluated directly",
                field=comparison.field,
            )

        if descriptor.kind == FieldKind.TEXT:
            return comparator(str(actual).lower(), str(comparison.value).lower())

        try:
            return comparator(actual, comparison.value)
        except TypeError:
            return False

    # -------------------------------------------------------------------------
    # Built-in fields
    # -------------------------------------------------------------------------

    def _register_builtin_fields(self) -> None:
        """Register all built-in fields."""
        self._register_identity_fields()
        self._register_price_fields()
        self._register_valuation_fields()
        self._register_profitability_fields()
        self._register_health_fields()
        self._register_growth_fields()
        self._register_volume_fields()
        self._register_return_fields()
        self._register_technical_fields()

    def _add(
        self,
        key: str,
        label: str,
        attr: str,
        kind: FieldKind,
        aliases: tuple = (),
        description: str = "",
        threshold: Optional[float] = None,
        higher_is_better: Optional[bool] = None,
    ) -> None:
        if kind in (FieldKind.TEXT, FieldKind.ENUM_SECTOR):
            ops = EQUALITY_OPERATORS
        else:
            ops = NUMERIC_OPERATORS
        self.register(FieldDescriptor(
            key=key,
            label=label,
            attr=attr,
            kind=kind,
            aliases=frozenset(aliases),
            comparable_ops=ops,
            description=description,
            default_threshold=threshold,
            higher_is_better=higher_is_better,
        ))

    def _register_identity_fields(self) -> None:
        self._add("symbol", "Symbol", "symbol", FieldKind.TEXT,
                  ("ticker",), "Stock symbol")
        self._add("name", "Name", "name", FieldKind.TEXT,
                  ("company name", "company_name"), "Company name")
        self._add("sector", "Sector", "sector", FieldKind.ENUM_SECTOR,
                  ("sect",), "Business sector")
        self._add("industry", "Industry", "industry", FieldKind.TEXT,
                  ("ind",), "Industry classification")

    def _register_price_fields(self) -> None:
        self._add("price", "Price", "price", FieldKind.CURRENCY,
                  ("current price", "current_price", "cmp", "ltp", "share price"),
                  "Current price")
        self._add("change", "Change", "change", FieldKind.CURRENCY,
                  ("price change", "price_change"), "Price change")
        self._add("changePct", "Change Pct", "change_pct", FieldKind.PERCENTAGE,
                  ("change_pct", "pct change", "percent change", "change percent",
                   "day change"),
                  "Price change %")
        self._add("high52w", "52W High", "high_52w", FieldKind.CURRENCY,
                  ("52w_high", "yearly high", "52wh"), "52-week high")
        self._add("low52w", "52W Low", "low_52w", FieldKind.CURRENCY,
                  ("52w_low", "yearly low", "52wl"), "52-week low")

    def _register_valuation_fields(self) -> None:
        self._add("mcap", "Mcap", "mcap", FieldKind.CURRENCY,
                  ("market cap", "marketcap", "market_cap", "cap",
                   "market capitalization", "m cap"),
                  "Market capitalization", threshold=50_000_000_000)
        self._add("pe", "PE", "pe", FieldKind.RATIO,
                  ("p/e", "pe ratio", "pe_ratio", "price to earnings", "p e"),
                  "Price to earnings ratio", threshold=20.0, higher_is_better=False)
        self._add("pb", "PB", "pb", FieldKind.RATIO,
                  ("p/b", "pb ratio", "pb_ratio", "price to book"),
                  "Price to book ratio", threshold=3.0, higher_is_better=False)
        self._add("ps", "PS", "ps", FieldKind.RATIO,
                  ("p/s", "ps ratio", "ps_ratio", "price to sales"),
                  "Price to sales ratio", threshold=3.0, higher_is_better=False)
        self._add("eps", "EPS", "eps", FieldKind.CURRENCY,
                  ("earnings per share",), "Earnings per share",
                  threshold=0.0, higher_is_better=True)
        self._add("dividendYield", "Dividend Yield", "dividend_yield", FieldKind.PERCENTAGE,
                  ("div yield", "div_yield", "yield", "dy", "dividend", "dividends"),
                  "Dividend yield", threshold=0.02, higher_is_better=True)

    def _register_profitability_fields(self) -> None:
        self._add("roe", "ROE", "roe", FieldKind.PERCENTAGE,
                  ("return on equity",), "Return on equity",
                  threshold=0.15, higher_is_better=True)
        self._add("roa", "ROA", "roa", FieldKind.PERCENTAGE,
                  ("return on assets",), "Return on assets",
                  threshold=0.08, higher_is_better=True)
        self._add("roce", "ROCE", "roce", FieldKind.PERCENTAGE,
                  ("return on capital", "return on capital employed"),
                  "Return on capital employed", threshold=0.15, higher_is_better=True)

    def _register_health_fields(self) -> None:
        self._add("debtToEquity", "Debt to Equity", "debt_to_equity", FieldKind.RATIO,
                  ("d/e", "de", "debt/equity", "debt_to_equity", "debt equity",
                   "debt", "leverage"),
                  "Debt to equity ratio", threshold=1.0, higher_is_better=False)
        self._add("currentRatio", "Current Ratio", "current_ratio", FieldKind.RATIO,
                  ("current_ratio", "liquidity"), "Current ratio",
                  threshold=1.5, higher_is_better=True)

    def _register_growth_fields(self) -> None:
        self._add("revenue", "Revenue", "revenue", FieldKind.CURRENCY,
                  ("sales", "rev", "turnover"), "Total revenue")
        self._add("revenueGrowth", "Revenue Growth", "revenue_growth", FieldKind.PERCENTAGE,
                  ("revenue_growth", "sales growth", "rev growth", "topline growth"),
                  "Revenue growth YoY", threshold=0.10, higher_is_better=True)
        self._add("profitGrowth", "Profit Growth", "profit_growth", FieldKind.PERCENTAGE,
                  ("profit_growth", "earnings growth", "np growth", "growth",
                   "bottomline growth"),
                  "Profit growth YoY", threshold=0.10, higher_is_better=True)

    def _register_volume_fields(self) -> None:
        self._add("volume", "Volume", "volume", FieldKind.NUMERIC,
                  ("vol", "today volume", "today_volume"), "Trading volume",
                  threshold=1_000_000)
        self._add("avgVolume20d", "Avg Volume", "avg_volume_20d", FieldKind.NUMERIC,
                  ("avg_volume", "average volume", "avg vol"), "20-day average volume",
                  threshold=1_000_000)
        self._add("volumeChange5d", "Volume Change", "volume_change_5d", FieldKind.PERCENTAGE,
                  ("volume_change", "vol change", "volume trend"), "5-day volume change",
                  threshold=0.0)
        self._add("deliveryPct", "Delivery Pct", "delivery_pct", FieldKind.PERCENTAGE,
                  ("delivery", "delivery_pct", "del pct", "delivery percent"),
                  "Delivery percentage", threshold=0.5, higher_is_better=True)
        self._add("deliveryPctAvg", "Avg Delivery", "delivery_pct_avg", FieldKind.PERCENTAGE,
                  ("delivery avg", "average delivery"), "Average delivery percentage",
                  threshold=0.5, higher_is_better=True)

    def _register_return_fields(self) -> None:
        self._add("return1d", "1D Return", "return_1d", FieldKind.PERCENTAGE,
                  ("daily return", "today return"), "1-day return",
                  threshold=0.0, higher_is_better=True)
        self._add("return1w", "1W Return", "return_1w", FieldKind.PERCENTAGE,
                  ("weekly return", "week return"), "1-week return",
                  threshold=0.0, higher_is_better=True)
        self._add("return1m", "Monthly Return", "return_1m", FieldKind.PERCENTAGE,
                  ("month return", "1m_return"), "1-month return",
                  threshold=0.0, higher_is_better=True)
        self._add("return3m", "Quarterly Return", "return_3m", FieldKind.PERCENTAGE,
                  ("quarter return", "3m_return"), "3-month return",
                  threshold=0.0, higher_is_better=True)
        self._add("return6m", "Half-Year Return", "return_6m", FieldKind.PERCENTAGE,
                  ("half year return", "6m_return"), "6-month return",
                  threshold=0.0, higher_is_better=True)
        self._add("return1y", "1Y Return", "return_1y", FieldKind.PERCENTAGE,
                  ("yearly return", "annual return", "return",
                   "returns"),
                  "1-year return", threshold=0.15, higher_is_better=True)
        self._add("return3y", "3Y Return", "return_3y", FieldKind.PERCENTAGE,
                  ("3y_return",), "3-year total return",
                  threshold=0.5, higher_is_better=True)
        self._add("cagr3y", "3Y CAGR", "cagr_3y", FieldKind.PERCENTAGE,
                  ("cagr",), "3-year CAGR",
                  threshold=0.12, higher_is_better=True)

    def _register_technical_fields(self) -> None:
        self._add("beta", "Beta", "beta", FieldKind.NUMERIC,
                  ("volatility",), "Beta versus the market", threshold=1.0,
                  higher_is_better=False)
        self._add("rsi", "RSI", "rsi", FieldKind.NUMERIC,
                  ("rsi14", "relative strength"), "RSI (14-day)", threshold=50.0)


def _fuzzy(name: str) -> str:
    return _FUZZY_STRIP.sub("", name.lower())


# Global catalog instance
FIELD_CATALOG = FieldCatalog()
