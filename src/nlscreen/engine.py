"""Execution Engine.

Applies a resolved plan to the security universe: filter, sort, limit.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional
import logging

from src.logging_config.performance import log_performance
from src.nlscreen.catalog import FIELD_CATALOG, FieldCatalog
from src.nlscreen.config import (
    ScreenerConfig,
    DEFAULT_SCREENER_CONFIG,
    Operator,
    SortDirection,
)
from src.nlscreen.errors import EngineError
from src.nlscreen.models import (
    And,
    Comparison,
    Or,
    Predicate,
    QueryPlan,
    SectorExclude,
    SectorIn,
    Security,
    SortSpec,
    TruePredicate,
    flatten_and,
)

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Rows returned by the engine.

    ``total`` counts every match before the plan limit and the
    ``max_results`` cap.
    """
    rows: list[Security] = field(default_factory=list)
    total: int = 0
    capped: bool = False


@dataclass
class ClauseSelectivity:
    """How many securities pass one top-level clause on its own."""
    clause: Predicate
    passing: int
    universe_size: int

    @property
    def ratio(self) -> float:
        if self.universe_size == 0:
            return 0.0
        return self.passing / self.universe_size


class ExecutionEngine:
    """Plan executor.

    Pure and single-threaded: the universe is treated as an immutable
    snapshot for the duration of one call.

    Numeric comparisons are exact on canonical values; providers are
    expected to round to two decimals, so no tolerance is applied.

    Example:
        engine = ExecutionEngine()
        rows = engine.execute(universe, plan)
    """

    def __init__(
        self,
        catalog: Optional[FieldCatalog] = None,
        config: Optional[ScreenerConfig] = None,
    ):
        self.catalog = catalog or FIELD_CATALOG
        self.config = config or DEFAULT_SCREENER_CONFIG

    def execute(self, universe: list[Security], plan: QueryPlan) -> list[Security]:
        """Filter, sort and limit the universe."""
        return self.run(universe, plan).rows

    @log_performance()
    def run(self, universe: list[Security], plan: QueryPlan) -> ExecutionResult:
        """Execute a plan and report the uncapped match count.

        Raises:
            EngineError: Plan references a field or operator the catalog
                does not support.
        """
        self.validate(plan)

        matches = [s for s in universe if plan.predicate.evaluate(s, self.catalog)]
        total = len(matches)

        if plan.sort:
            matches = self._sort(matches, plan.sort)

        if plan.limit is not None:
            if plan.from_bottom:
                matches = matches[-plan.limit:] if plan.limit else []
            else:
                matches = matches[:plan.limit]

        capped = len(matches) > self.config.max_results
        if capped:
            logger.debug(f"Capping {len(matches)} rows at {self.config.max_results}")
            matches = matches[:self.config.max_results]

        return ExecutionResult(rows=matches, total=total, capped=capped)

    def validate(self, plan: QueryPlan) -> None:
        """Check every referenced field and operator against the catalog."""
        self._validate_predicate(plan.predicate)
        if plan.sort:
            self.catalog.require(plan.sort.field)
        if plan.limit is not None and plan.limit < 0:
            raise EngineError(f"Limit must not be negative: {plan.limit}")

    def _validate_predicate(self, predicate: Predicate) -> None:
        if isinstance(predicate, (And, Or)):
            self._validate_predicate(predicate.left)
            self._validate_predicate(predicate.right)
        elif isinstance(predicate, Comparison):
            if predicate.op == Operator.BETWEEN:
                raise EngineError(
                    "between must be expanded before execution", field=predicate.field,
                )
            self.catalog.check_operator(predicate.field, predicate.op)
        elif not isinstance(predicate, (TruePredicate, SectorIn, SectorExclude)):
            raise EngineError(f"Unsupported predicate: {predicate!r}")

    def _sort(self, rows: list[Security], sort: SortSpec) -> list[Security]:
        """Stable sort; missing values go last in either direction."""
        descriptor = self.catalog.require(sort.field)

        present = []
        missing = []
        for security in rows:
            value = descriptor.read(security)
            if _is_missing(value):
                missing.append(security)
            else:
                present.append(security)

        def sort_key(security: Security) -> Any:
            value = descriptor.read(security)
            return value.lower() if isinstance(value, str) else value

        reverse = sort.direction == SortDirection.DESC
        return sorted(present, key=sort_key, reverse=reverse) + missing

    def clause_selectivity(
        self,
        universe: list[Security],
        plan: QueryPlan,
    ) -> list[ClauseSelectivity]:
        """Pass counts for each top-level clause, tightest first."""
        stats = []
        for clause in flatten_and(plan.predicate):
            passing = sum(1 for s in universe if clause.evaluate(s, self.catalog))
            stats.append(ClauseSelectivity(clause, passing, len(universe)))
        stats.sort(key=lambda s: s.passing)
        return stats


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, float) and math.isnan(value)
