"""Refinement Resolver.

Decides how a parsed plan relates to the session: a fresh screen, a
``+N`` refinement of the latest plan, or a meta request.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from src.nlscreen.config import IntentKind
from src.nlscreen.errors import NoContextToRefineError
from src.nlscreen.models import (
    QueryIntent,
    QueryPlan,
    SessionContext,
    Security,
    conjoin,
)

logger = logging.getLogger(__name__)


@dataclass
class ResolvedPlan:
    """A plan ready for execution.

    ``base`` is the row set to screen: ``None`` means the full universe,
    a list means the previous results being refined.
    """
    intent: QueryIntent
    plan: QueryPlan
    base: Optional[list[Security]] = None

    @property
    def is_refinement(self) -> bool:
        return self.intent.kind == IntentKind.REFINEMENT


class RefinementResolver:
    """Merges refinements into the standing session plan.

    Refinement rules:
        - filters are conjoined onto the previous predicate
        - sector excludes land as ``SectorExclude`` on the previous rows
        - a new sort replaces the previous sort
        - a new limit replaces the previous limit (last limit wins)

    Refinement is single-lineage: ``+N`` always refines the latest plan.
    """

    def resolve(
        self,
        intent: QueryIntent,
        plan: QueryPlan,
        ctx: SessionContext,
    ) -> ResolvedPlan:
        """Resolve a parsed plan against the session.

        Raises:
            NoContextToRefineError: Refinement without a previous screen.
        """
        if intent.kind == IntentKind.NEW_SCREEN:
            return ResolvedPlan(intent, plan)

        if intent.kind == IntentKind.CLEAR_CONTEXT:
            ctx.clear()
            return ResolvedPlan(intent, QueryPlan())

        if intent.kind == IntentKind.HELP:
            return ResolvedPlan(intent, QueryPlan())

        if ctx.is_empty:
            logger.info(f"Refinement +{intent.ref_index} without a previous screen")
            raise NoContextToRefineError(intent.ref_index or 1)

        merged = self.merge(ctx.last_plan, plan)
        logger.debug(f"Refinement +{intent.ref_index} merged into {merged!r}")
        return ResolvedPlan(intent, merged, base=list(ctx.last_results or []))

    @staticmethod
    def merge(previous: QueryPlan, refinement: QueryPlan) -> QueryPlan:
        """Compose a refinement onto a previous plan."""
        if refinement.limit is not None:
            limit = refinement.limit
            from_bottom = refinement.from_bottom
        else:
            limit = previous.limit
            from_bottom = previous.from_bottom

        return QueryPlan(
            predicate=conjoin(previous.predicate, refinement.predicate),
            sort=refinement.sort or previous.sort,
            limit=limit,
            from_bottom=from_bottom,
        )
