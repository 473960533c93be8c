"""Natural Language Screener Data Models.

Dataclasses for securities, field descriptors, predicates, plans,
session state, and responses.
"""

from collections import deque
from dataclasses import dataclass, field, fields
from typing import Any, Optional

from src.nlscreen.config import (
    FieldKind,
    Operator,
    SortDirection,
    IntentKind,
    ResponseType,
)


# =============================================================================
# Security
# =============================================================================

@dataclass(frozen=True)
class Security:
    """A read-only security record supplied by the data provider.

    Percentage metrics are fractions (``roe=0.18`` is 18%), currency
    metrics are in base units. Missing values are ``None``.
    """
    symbol: str
    name: str = ""
    sector: str = ""
    industry: str = ""

    # Price
    price: Optional[float] = None
    change: Optional[float] = None
    change_pct: Optional[float] = None

    # Valuation
    mcap: Optional[float] = None
    pe: Optional[float] = None
    pb: Optional[float] = None
    ps: Optional[float] = None
    eps: Optional[float] = None

    # Profitability
    roe: Optional[float] = None
    roa: Optional[float] = None
    roce: Optional[float] = None

    # Financial health
    debt_to_equity: Optional[float] = None
    current_ratio: Optional[float] = None

    # Dividends and growth
    dividend_yield: Optional[float] = None
    revenue: Optional[float] = None
    revenue_growth: Optional[float] = None
    profit_growth: Optional[float] = None

    # Volume
    volume: Optional[float] = None
    avg_volume_20d: Optional[float] = None
    volume_change_5d: Optional[float] = None

    # Range and returns
    high_52w: Optional[float] = None
    low_52w: Optional[float] = None
    return_1d: Optional[float] = None
    return_1w: Optional[float] = None
    return_1m: Optional[float] = None
    return_3m: Optional[float] = None
    return_6m: Optional[float] = None
    return_1y: Optional[float] = None
    return_3y: Optional[float] = None
    cagr_3y: Optional[float] = None

    # Technical
    beta: Optional[float] = None
    rsi: Optional[float] = None

    # Delivery (Indian markets)
    delivery_pct: Optional[float] = None
    delivery_pct_avg: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        """Render with catalog (camelCase) keys for the UI."""
        from src.nlscreen.catalog import FIELD_CATALOG

        out = {}
        for descriptor in FIELD_CATALOG.get_all_fields():
            out[descriptor.key] = getattr(self, descriptor.attr)
        return out


SECURITY_ATTRS = frozenset(f.name for f in fields(Security))


# =============================================================================
# Field Descriptor
# =============================================================================

@dataclass(frozen=True)
class FieldDescriptor:
    """Definition of a queryable field."""
    key: str
    label: str
    attr: str
    kind: FieldKind
    aliases: frozenset[str] = frozenset()
    comparable_ops: frozenset[Operator] = frozenset()
    description: str = ""

    # Qualitative heuristics ("low PE", "good ROE")
    default_threshold: Optional[float] = None
    higher_is_better: Optional[bool] = None

    @property
    def is_numeric(self) -> bool:
        return self.kind not in (FieldKind.TEXT, FieldKind.ENUM_SECTOR)

    def read(self, security: Security) -> Any:
        """Read this field's value from a security."""
        return getattr(security, self.attr)


# =============================================================================
# Predicates
# =============================================================================

class Predicate:
    """Base predicate node."""

    def evaluate(self, security: Security, catalog) -> bool:
        raise NotImplementedError

    def comparisons(self) -> list["Comparison"]:
        """All comparison leaves, left to right."""
        return []

    def fields(self) -> list[str]:
        """Field keys referenced by this predicate, in order."""
        return [c.field for c in self.comparisons()]


@dataclass(frozen=True)
class TruePredicate(Predicate):
    """Matches every security."""

    def evaluate(self, security: Security, catalog) -> bool:
        return True


@dataclass(frozen=True)
class Comparison(Predicate):
    """Field comparison; ``value`` is already in canonical units."""
    field: str
    op: Operator
    value: Any

    def evaluate(self, security: Security, catalog) -> bool:
        return catalog.compare(self, security)

    def comparisons(self) -> list["Comparison"]:
        return [self]


@dataclass(frozen=True)
class SectorIn(Predicate):
    """Security sector is one of the given canonical sectors."""
    sectors: frozenset[str]

    def evaluate(self, security: Security, catalog) -> bool:
        return catalog.normalize_sector(security.sector) in self.sectors

    def fields(self) -> list[str]:
        return ["sector"]


@dataclass(frozen=True)
class SectorExclude(Predicate):
    """Security sector is none of the given canonical sectors."""
    sectors: frozenset[str]

    def evaluate(self, security: Security, catalog) -> bool:
        return catalog.normalize_sector(security.sector) not in self.sectors

    def fields(self) -> list[str]:
        return ["sector"]


@dataclass(frozen=True)
class And(Predicate):
    """Conjunction, evaluated left first."""
    left: Predicate
    right: Predicate

    def evaluate(self, security: Security, catalog) -> bool:
        return self.left.evaluate(security, catalog) and self.right.evaluate(security, catalog)

    def comparisons(self) -> list[Comparison]:
        return self.left.comparisons() + self.right.comparisons()

    def fields(self) -> list[str]:
        return self.left.fields() + self.right.fields()


@dataclass(frozen=True)
class Or(Predicate):
    """Disjunction, evaluated left first."""
    left: Predicate
    right: Predicate

    def evaluate(self, security: Security, catalog) -> bool:
        return self.left.evaluate(security, catalog) or self.right.evaluate(security, catalog)

    def comparisons(self) -> list[Comparison]:
        return self.left.comparisons() + self.right.comparisons()

    def fields(self) -> list[str]:
        return self.left.fields() + self.right.fields()


TRUE = TruePredicate()


def conjoin(left: Predicate, right: Predicate) -> Predicate:
    """And two predicates, dropping ``True`` operands."""
    if isinstance(left, TruePredicate):
        return right
    if isinstance(right, TruePredicate):
        return left
    return And(left, right)


def disjoin(left: Predicate, right: Predicate) -> Predicate:
    """Or two predicates; ``True`` absorbs the other operand."""
    if isinstance(left, TruePredicate) or isinstance(right, TruePredicate):
        return TRUE
    return Or(left, right)


_NEGATED_OPS = {
    Operator.LT: Operator.GTE,
    Operator.GTE: Operator.LT,
    Operator.GT: Operator.LTE,
    Operator.LTE: Operator.GT,
    Operator.EQ: Operator.NE,
    Operator.NE: Operator.EQ,
}


def negate(predicate: Predicate) -> Predicate:
    """Logical complement, pushed down to the comparisons.

    A security with a missing value still matches neither side.
    """
    if isinstance(predicate, Comparison):
        return Comparison(predicate.field, _NEGATED_OPS[predicate.op], predicate.value)
    if isinstance(predicate, SectorIn):
        return SectorExclude(predicate.sectors)
    if isinstance(predicate, SectorExclude):
        return SectorIn(predicate.sectors)
    if isinstance(predicate, And):
        return disjoin(negate(predicate.left), negate(predicate.right))
    if isinstance(predicate, Or):
        return conjoin(negate(predicate.left), negate(predicate.right))
    raise TypeError(f"Cannot negate predicate: {predicate!r}")


def flatten_and(predicate: Predicate) -> list[Predicate]:
    """Top-level conjuncts of a predicate, left to right."""
    if isinstance(predicate, And):
        return flatten_and(predicate.left) + flatten_and(predicate.right)
    if isinstance(predicate, TruePredicate):
        return []
    return [predicate]


def canonical_form(predicate: Predicate) -> tuple:
    """Hashable normal form used to compare plans for equivalence.

    Conjunctions and disjunctions are flattened and made order-free,
    multi-sector sets are split into singletons (``SectorIn`` is a
    disjunction, ``SectorExclude`` a conjunction).
    """
    if isinstance(predicate, TruePredicate):
        return ("true",)
    if isinstance(predicate, Comparison):
        return ("cmp", predicate.field, predicate.op.value, predicate.value)
    if isinstance(predicate, SectorIn):
        parts = frozenset(("in", s) for s in predicate.sectors)
        return next(iter(parts)) if len(parts) == 1 else ("or", parts)
    if isinstance(predicate, SectorExclude):
        parts = frozenset(("ex", s) for s in predicate.sectors)
        return next(iter(parts)) if len(parts) == 1 else ("and", parts)
    if isinstance(predicate, (And, Or)):
        tag = "and" if isinstance(predicate, And) else "or"
        children = set()
        for child in (predicate.left, predicate.right):
            form = canonical_form(child)
            if form[0] == tag:
                children.update(form[1])
            elif not (tag == "and" and form == ("true",)):
                children.add(form)
        if len(children) == 1:
            return next(iter(children))
        return (tag, frozenset(children))
    raise TypeError(f"Unknown predicate: {predicate!r}")


# =============================================================================
# Plans and Intents
# =============================================================================

@dataclass(frozen=True)
class SortSpec:
    """Sort directive."""
    field: str
    direction: SortDirection = SortDirection.DESC


@dataclass(frozen=True)
class QueryPlan:
    """Executable representation of a query."""
    predicate: Predicate = TRUE
    sort: Optional[SortSpec] = None
    limit: Optional[int] = None
    from_bottom: bool = False  # keep the last ``limit`` rows instead of the first

    @property
    def is_empty(self) -> bool:
        return (
            isinstance(self.predicate, TruePredicate)
            and self.sort is None
            and self.limit is None
        )

    def referenced_fields(self) -> list[str]:
        """Fields used by filters then sort, first occurrence order."""
        keys = list(self.predicate.fields())
        if self.sort:
            keys.append(self.sort.field)
        return list(dict.fromkeys(keys))

    def equivalent(self, other: "QueryPlan") -> bool:
        """Same meaning, ignoring clause order and tree shape."""
        return (
            canonical_form(self.predicate) == canonical_form(other.predicate)
            and self.sort == other.sort
            and self.limit == other.limit
            and self.from_bottom == other.from_bottom
        )


@dataclass(frozen=True)
class QueryIntent:
    """Detected intent; ``ref_index`` is the ``+N`` of a refinement."""
    kind: IntentKind = IntentKind.NEW_SCREEN
    ref_index: Optional[int] = None

    @classmethod
    def refinement(cls, ref_index: int) -> "QueryIntent":
        return cls(IntentKind.REFINEMENT, ref_index)


@dataclass(frozen=True)
class SkippedClause:
    """A piece of input the parser could not use."""
    text: str
    reason: str = ""


@dataclass(frozen=True)
class HeuristicMatch:
    """A qualitative phrase resolved through the heuristic table."""
    phrase: str
    predicate: Predicate


# =============================================================================
# Session Context
# =============================================================================

class SessionContext:
    """Per-session refinement state.

    Owned by exactly one ``Screener``. Not safe for concurrent mutation:
    a host serving several sessions keeps one screener per session.
    """

    def __init__(self, history_size: int = 20):
        self.last_plan: Optional[QueryPlan] = None
        self.last_results: Optional[list[Security]] = None
        self.history: deque[QueryPlan] = deque(maxlen=history_size)

    @property
    def is_empty(self) -> bool:
        return self.last_plan is None

    def record(self, plan: QueryPlan, results: list[Security]) -> None:
        """Remember a successful screen, most recent first."""
        self.last_plan = plan
        self.last_results = list(results)
        self.history.appendleft(plan)

    def clear(self) -> None:
        self.last_plan = None
        self.last_results = None
        self.history.clear()


# =============================================================================
# Response
# =============================================================================

@dataclass
class ScreenerResponse:
    """Result of one ``Screener.query`` call."""
    type: ResponseType = ResponseType.SCREENER
    data: list[Security] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)
    interpretation: str = ""
    suggestions: list[str] = field(default_factory=list)
    total: int = 0
    execution_time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.type != ResponseType.ERROR

    def to_dict(self) -> dict[str, Any]:
        """Render for the UI with camelCase keys."""
        return {
            "type": self.type.value,
            "data": [s.to_dict() for s in self.data],
            "columns": list(self.columns),
            "interpretation": self.interpretation,
            "suggestions": list(self.suggestions),
            "total": self.total,
            "executionTimeMs": round(self.execution_time_ms, 3),
        }
