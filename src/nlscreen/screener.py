"""Screener Facade.

Public entry point: owns the session context and wires the parser,
resolver, engine and interpreter together.
"""

from typing import Callable, Iterable, Optional
import logging

from src.logging_config import PerformanceTimer, SessionLogContext, generate_id
from src.nlscreen.catalog import FIELD_CATALOG, FieldCatalog
from src.nlscreen.config import (
    ScreenerConfig,
    DEFAULT_SCREENER_CONFIG,
    DEFAULT_COLUMNS,
    RELATED_COLUMNS,
    IntentKind,
    ResponseType,
)
from src.nlscreen.engine import ExecutionEngine
from src.nlscreen.errors import (
    EmptyQueryError,
    EngineError,
    NoContextToRefineError,
)
from src.nlscreen.interpret import Interpreter
from src.nlscreen.models import (
    QueryPlan,
    ScreenerResponse,
    Security,
    SessionContext,
)
from src.nlscreen.parser import ParseResult, QueryParser
from src.nlscreen.refinement import RefinementResolver

logger = logging.getLogger(__name__)

UniverseProvider = Callable[[], Iterable[Security]]


class Screener:
    """Natural language stock screener.

    One instance serves one session: its context is not safe for
    concurrent queries. Hosts handling several sessions keep one
    screener per session.

    Example:
        screener = Screener(lambda: securities)
        response = screener.query("IT sector PE < 15")
        response = screener.query("+1 exclude Pharma")
    """

    def __init__(
        self,
        universe_provider: UniverseProvider,
        catalog: Optional[FieldCatalog] = None,
        config: Optional[ScreenerConfig] = None,
        session_id: Optional[str] = None,
    ):
        self.catalog = catalog or FIELD_CATALOG
        self.config = config or DEFAULT_SCREENER_CONFIG
        self.session_id = session_id or generate_id()

        self.parser = QueryParser(self.catalog)
        self.resolver = RefinementResolver()
        self.engine = ExecutionEngine(self.catalog, self.config)
        self.interpreter = Interpreter(self.catalog, self.config)
        self.context = SessionContext(self.config.history_size)

        self._universe_provider = universe_provider

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def query(self, text: str) -> ScreenerResponse:
        """Answer one query.

        User-input problems come back as ``ERROR`` responses; only
        ``EngineError`` (a catalog or plan invariant violation) raises.
        """
        with SessionLogContext(session_id=self.session_id):
            with PerformanceTimer("screener query", self.config.slow_threshold_ms) as timer:
                response = self._answer(text)
                response.execution_time_ms = timer.elapsed_ms
            logger.info(
                f"Query answered: {response.type.value}, {response.total} matches",
                extra={"result_count": response.total, "duration_ms": round(timer.duration_ms, 2)},
            )
        return response

    def clear_context(self) -> None:
        """Forget the previous screen and history."""
        self.context.clear()
        logger.debug(f"Context cleared for session {self.session_id}")

    def set_universe_provider(self, universe_provider: UniverseProvider) -> None:
        """Swap the data source; takes effect on the next query."""
        self._universe_provider = universe_provider

    @property
    def last_results(self) -> list[Security]:
        """Rows of the last successful screen."""
        return list(self.context.last_results or [])

    @property
    def history(self) -> list[QueryPlan]:
        """Resolved plans, most recent first."""
        return list(self.context.history)

    def columns_for(self, plan: QueryPlan) -> list[str]:
        """Display columns: defaults, referenced fields, related fields."""
        referenced = plan.referenced_fields()
        columns = list(DEFAULT_COLUMNS) + referenced
        for triggers, related in RELATED_COLUMNS:
            if any(key in referenced for key in triggers):
                columns.extend(related)
        return list(dict.fromkeys(columns))[:self.config.max_columns]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _answer(self, text: str) -> ScreenerResponse:
        if not text or not text.strip():
            return self._error_response(text or "")

        try:
            parsed = self.parser.parse_text(text)
        except EmptyQueryError:
            return self._error_response(text)

        if parsed.intent.kind == IntentKind.HELP:
            return ScreenerResponse(
                type=ResponseType.HELP,
                interpretation=self.interpreter.help_text(),
            )

        if parsed.intent.kind == IntentKind.CLEAR_CONTEXT:
            self.clear_context()
            return ScreenerResponse(
                type=ResponseType.HELP,
                interpretation="Context cleared. Start a new screen.",
            )

        try:
            resolved = self.resolver.resolve(parsed.intent, parsed.plan, self.context)
        except NoContextToRefineError as e:
            return ScreenerResponse(
                type=ResponseType.ERROR,
                interpretation=e.message,
                suggestions=self.interpreter.error_suggestions(),
            )

        base = resolved.base if resolved.base is not None else self._universe()
        return self._execute(parsed, resolved.plan, resolved.intent, base)

    def _execute(
        self,
        parsed: ParseResult,
        plan: QueryPlan,
        intent,
        base: list[Security],
    ) -> ScreenerResponse:
        try:
            result = self.engine.run(base, plan)
        except EngineError as e:
            logger.error(f"Engine error for plan {plan!r}: {e.message}")
            raise

        selectivity = None
        if result.total == 0:
            selectivity = self.engine.clause_selectivity(base, plan)

        interpretation, suggestions = self.interpreter.explain(
            plan,
            intent,
            result.total,
            skipped=parsed.skipped,
            heuristics=parsed.heuristics,
            selectivity=selectivity,
        )

        self.context.record(plan, result.rows)

        return ScreenerResponse(
            type=ResponseType.SCREENER,
            data=result.rows,
            columns=self.columns_for(plan),
            interpretation=interpretation,
            suggestions=suggestions,
            total=result.total,
        )

    def _universe(self) -> list[Security]:
        return list(self._universe_provider())

    def _error_response(self, text: str) -> ScreenerResponse:
        return ScreenerResponse(
            type=ResponseType.ERROR,
            interpretation=self.interpreter.error_text(text),
            suggestions=self.interpreter.error_suggestions(),
        )


def new_screener(
    universe_provider: UniverseProvider,
    config: Optional[ScreenerConfig] = None,
) -> Screener:
    """Create a screener configured from the process settings."""
    return Screener(universe_provider, config=config or ScreenerConfig.from_settings())
