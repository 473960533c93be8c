"""Interpretation and Suggestions.

Renders plans back into query text and proposes follow-ups. The
rendered sentence is valid query syntax: feeding it back through the
parser yields an equivalent plan.
"""

from decimal import Decimal
from typing import Optional, Sequence
import logging

from src.nlscreen.catalog import FIELD_CATALOG, FieldCatalog
from src.nlscreen.config import (
    ScreenerConfig,
    DEFAULT_SCREENER_CONFIG,
    EXAMPLE_QUERIES,
    FieldKind,
    IntentKind,
    MAGNITUDE_SUFFIXES,
    RENDER_SUFFIXES,
    SECTORS,
)
from src.nlscreen.engine import ClauseSelectivity
from src.nlscreen.models import (
    And,
    Comparison,
    FieldDescriptor,
    HeuristicMatch,
    Or,
    Predicate,
    QueryIntent,
    QueryPlan,
    SectorExclude,
    SectorIn,
    SkippedClause,
    TruePredicate,
    flatten_and,
)

logger = logging.getLogger(__name__)

PREFIX = "Screening for: "


class Interpreter:
    """Plan renderer and suggestion generator.

    Example:
        interpreter = Interpreter()
        text, suggestions = interpreter.explain(plan, intent, result_count=3)
        # "Screening for: PE < 15.00, in IT sector"
    """

    def __init__(
        self,
        catalog: Optional[FieldCatalog] = None,
        config: Optional[ScreenerConfig] = None,
    ):
        self.catalog = catalog or FIELD_CATALOG
        self.config = config or DEFAULT_SCREENER_CONFIG

    # -------------------------------------------------------------------------
    # Explain
    # -------------------------------------------------------------------------

    def explain(
        self,
        plan: QueryPlan,
        intent: QueryIntent,
        result_count: int,
        skipped: Sequence[SkippedClause] = (),
        heuristics: Sequence[HeuristicMatch] = (),
        selectivity: Optional[list[ClauseSelectivity]] = None,
    ) -> tuple[str, list[str]]:
        """Describe a plan and suggest follow-ups.

        Args:
            plan: The resolved plan that was executed.
            intent: Intent the plan was resolved under.
            result_count: Matches before limit and cap.
            skipped: Clauses the parser ignored.
            heuristics: Qualitative phrases that were substituted.
            selectivity: Per-clause pass counts, tightest first.

        Returns:
            Tuple of (interpretation, suggestions).
        """
        text = self.describe_plan(plan)
        if intent.kind == IntentKind.REFINEMENT:
            text = f"+{intent.ref_index} refinement of previous results. {text}"

        suggestions = self.suggest(plan, result_count, skipped, heuristics, selectivity)
        return text, suggestions

    def describe_plan(self, plan: QueryPlan) -> str:
        """Render a plan as a deterministic, field-ordered sentence."""
        tree: list[Predicate] = []
        include: Optional[SectorIn] = None
        excluded: list[str] = []

        for clause in flatten_and(plan.predicate):
            if isinstance(clause, SectorIn) and include is None:
                include = clause
            elif isinstance(clause, SectorExclude):
                excluded.extend(s for s in _sector_order(clause.sectors) if s not in excluded)
            else:
                tree.append(clause)

        tree.sort(key=self._clause_order)

        parts = []
        if tree:
            parts.append(" and ".join(self._render(c, parent=And) for c in tree))
        if include is not None:
            parts.append(f"in {_sector_phrase(include.sectors)}")
        if excluded:
            parts.append(f"excluding {_sector_phrase(excluded)}")
        if not parts:
            parts.append("all securities")

        if plan.sort:
            label = self.catalog.require(plan.sort.field).label
            parts.append(f"sorted by {label} {plan.sort.direction.value}")
        if plan.limit is not None:
            end = "bottom" if plan.from_bottom else "top"
            parts.append(f"limited to {end} {plan.limit}")

        return PREFIX + ", ".join(parts)

    def describe_predicate(self, predicate: Predicate) -> str:
        """Render a predicate without the plan framing."""
        clauses = flatten_and(predicate)
        if not clauses:
            return "all securities"
        return " and ".join(self._render(c, parent=And) for c in clauses)

    def _render(self, predicate: Predicate, parent: type) -> str:
        if isinstance(predicate, Comparison):
            descriptor = self.catalog.require(predicate.field)
            value = self.format_value(descriptor, predicate.value)
            return f"{descriptor.label} {predicate.op.value} {value}"

        if isinstance(predicate, SectorIn):
            names = [f"sector = {s}" for s in _sector_order(predicate.sectors)]
            return _group(names, " or ", parent is And and len(names) > 1)

        if isinstance(predicate, SectorExclude):
            names = [f"sector != {s}" for s in _sector_order(predicate.sectors)]
            return _group(names, " and ", parent is Or and len(names) > 1)

        if isinstance(predicate, And):
            return f"{self._render(predicate.left, And)} and {self._render(predicate.right, And)}"

        if isinstance(predicate, Or):
            text = f"{self._render(predicate.left, Or)} or {self._render(predicate.right, Or)}"
            return _group([text], "", parent is And)

        if isinstance(predicate, TruePredicate):
            return "all securities"

        raise TypeError(f"Cannot render predicate: {predicate!r}")

    def _clause_order(self, clause: Predicate) -> int:
        fields = clause.fields()
        if not fields:
            return self.catalog.order_of("")
        return min(self.catalog.order_of(f) for f in fields)

    # -------------------------------------------------------------------------
    # Values
    # -------------------------------------------------------------------------

    def format_value(self, descriptor: FieldDescriptor, value) -> str:
        """Format a canonical value the way a user would type it."""
        kind = descriptor.kind
        if kind in (FieldKind.TEXT, FieldKind.ENUM_SECTOR):
            return f'"{value}"' if kind == FieldKind.TEXT else str(value)

        number = _to_decimal(value)
        if kind == FieldKind.PERCENTAGE:
            return _decimal_text(number * 100, 1) + "%"
        if kind == FieldKind.RATIO:
            return _decimal_text(number, 2)
        return self._magnitude_text(number)

    def _magnitude_text(self, number: Decimal) -> str:
        for suffix in RENDER_SUFFIXES[self.config.currency_style]:
            multiplier = MAGNITUDE_SUFFIXES[suffix]
            if abs(number) < multiplier:
                continue
            scaled = number / multiplier
            if scaled == scaled.quantize(Decimal("0.01")):
                return _decimal_text(scaled, 0) + suffix
        return _decimal_text(number, 0)

    # -------------------------------------------------------------------------
    # Suggestions
    # -------------------------------------------------------------------------

    def suggest(
        self,
        plan: QueryPlan,
        result_count: int,
        skipped: Sequence[SkippedClause] = (),
        heuristics: Sequence[HeuristicMatch] = (),
        selectivity: Optional[list[ClauseSelectivity]] = None,
    ) -> list[str]:
        """Rule-based follow-ups for a finished screen."""
        suggestions = []

        if result_count == 0:
            suggestions.append(self._loosen_hint(plan, selectivity))
        elif result_count > self.config.large_result_threshold and (
            plan.sort is None or plan.limit is None
        ):
            field_key = plan.sort.field if plan.sort else self._rank_field(plan)
            label = self.catalog.require(field_key).label
            suggestions.append(
                f"{result_count} matches: add a sort and limit, e.g. \"top 10 by {label}\""
            )

        for match in heuristics:
            suggestions.append(
                f"interpreted '{match.phrase}' as {self.describe_predicate(match.predicate)}"
            )
        for clause in skipped:
            suggestions.append(f"ignored: {clause.text}")

        return suggestions

    def _loosen_hint(
        self,
        plan: QueryPlan,
        selectivity: Optional[list[ClauseSelectivity]],
    ) -> str:
        if selectivity:
            tightest = selectivity[0]
            return (
                f"No matches: try loosening {self.describe_predicate(tightest.clause)} "
                f"(only {tightest.passing} of {tightest.universe_size} pass it)"
            )
        clauses = flatten_and(plan.predicate)
        if clauses:
            return f"No matches: try loosening {self.describe_predicate(clauses[0])}"
        return "No matches: the universe is empty"

    def _rank_field(self, plan: QueryPlan) -> str:
        for key in plan.referenced_fields():
            descriptor = self.catalog.get_field(key)
            if descriptor and descriptor.is_numeric:
                return key
        return "mcap"

    # -------------------------------------------------------------------------
    # Canned texts
    # -------------------------------------------------------------------------

    def help_text(self) -> str:
        """Syntax guide with a sample of fields and the sector list."""
        fields = "\n".join(
            f"  {f.label}: {f.description}" for f in self.catalog.get_all_fields()[:20]
        )
        return (
            "Screener Query Syntax\n"
            "\n"
            "Filters:\n"
            "  PE < 15\n"
            "  Mcap > $5B  (also 5000Cr, 50000L)\n"
            "  ROE >= 20%\n"
            "  Dividend Yield between 2% and 5%\n"
            "  low PE, high ROE, cheap, profitable, large cap\n"
            "\n"
            "Combining:\n"
            "  PE < 15 and ROE > 20% or sector = IT  (and binds tighter)\n"
            "  (PE < 15 or PB < 2) and ROE > 15%\n"
            "\n"
            "Sectors:\n"
            "  in energy sector\n"
            "  IT stocks\n"
            "  exclude pharma, healthcare\n"
            "\n"
            "Sorting:\n"
            "  top 20 by market cap\n"
            "  sorted by PE ascending\n"
            "  highest dividend yield\n"
            "\n"
            "Follow-ups:\n"
            "  +1 exclude energy\n"
            "  +1 top 5\n"
            "  clear\n"
            "\n"
            f"Fields (sample):\n{fields}\n"
            "\n"
            f"Sectors:\n  {', '.join(SECTORS)}"
        )

    def error_text(self, query: str) -> str:
        return f"I couldn't understand \"{query.strip()}\". Try rephrasing or type \"help\" for the syntax guide."

    def error_suggestions(self) -> list[str]:
        return list(EXAMPLE_QUERIES)


def _group(parts: list[str], joiner: str, parenthesize: bool) -> str:
    text = joiner.join(parts) if joiner else parts[0]
    return f"({text})" if parenthesize else text


def _sector_order(sectors) -> list[str]:
    """Sectors in vocabulary order, unknown names last."""
    def position(sector: str) -> tuple:
        if sector in SECTORS:
            return (SECTORS.index(sector), sector)
        return (len(SECTORS), sector)
    return sorted(sectors, key=position)


def _sector_phrase(sectors) -> str:
    names = _sector_order(sectors)
    noun = "sector" if len(names) == 1 else "sectors"
    return f"{', '.join(names)} {noun}"


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def _decimal_text(number: Decimal, min_places: int) -> str:
    """Plain decimal text, trailing zeros trimmed to ``min_places``."""
    text = format(number, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    whole, _, frac = text.partition(".")
    frac = frac.ljust(min_places, "0")
    return f"{whole}.{frac}" if frac else whole
