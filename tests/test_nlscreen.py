"""Tests for the Natural Language Stock Screener."""

import logging
from decimal import Decimal

import pandas as pd
import pytest

from src.nlscreen import (
    # Config
    FieldKind, Operator, SortDirection, IntentKind, ResponseType, CurrencyStyle,
    DEFAULT_COLUMNS, EXAMPLE_QUERIES, ScreenerConfig,
    # Errors
    EmptyQueryError, EngineError, NoContextToRefineError,
    UnitMismatchError, UnknownFieldError,
    # Models
    Security, FieldDescriptor, Comparison, SectorIn, SectorExclude, And, Or, TRUE, negate,
    SortSpec, QueryPlan, QueryIntent, SkippedClause, HeuristicMatch, SessionContext,
    ScreenerResponse,
    # Core
    FieldCatalog, FIELD_CATALOG, Lexer, TokenKind, tokenize,
    QueryParser, ParseResult, RefinementResolver, ExecutionEngine, Interpreter,
    Screener, new_screener, universe_from_frame, results_to_frame,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def parser():
    return QueryParser()


@pytest.fixture
def engine():
    return ExecutionEngine()


@pytest.fixture
def interpreter():
    return Interpreter()


@pytest.fixture
def ranked_universe():
    """Twenty IT securities with PE 1..20."""
    return [
        Security(symbol=f"S{i:02d}", name=f"Stock {i}", sector="IT", pe=float(i))
        for i in range(1, 21)
    ]


def symbols(rows):
    return [s.symbol for s in rows]


# =============================================================================
# Test Field Catalog
# =============================================================================

class TestFieldCatalog:
    """Tests for FieldCatalog."""

    def test_resolve_aliases(self):
        assert FIELD_CATALOG.resolve("market cap") == "mcap"
        assert FIELD_CATALOG.resolve("Market_Cap") == "mcap"
        assert FIELD_CATALOG.resolve("P/E") == "pe"
        assert FIELD_CATALOG.resolve("dividend yield") == "dividendYield"
        assert FIELD_CATALOG.resolve("Debt to Equity") == "debtToEquity"

    def test_resolve_unknown(self):
        assert FIELD_CATALOG.resolve("moonphase") is None
        assert FIELD_CATALOG.resolve("") is None

    def test_labels_resolve_to_their_field(self):
        """Every label must parse back to its own key."""
        for descriptor in FIELD_CATALOG.get_all_fields():
            assert FIELD_CATALOG.resolve(descriptor.label) == descriptor.key

    def test_every_name_can_be_typed(self):
        """Each label and alias lexes to words that resolve to its field."""
        for descriptor in FIELD_CATALOG.get_all_fields():
            if descriptor.kind == FieldKind.ENUM_SECTOR:
                continue
            for name in (descriptor.label, *descriptor.aliases):
                tokens = tokenize(name)
                assert tokens[0].kind == TokenKind.IDENT, name
                assert all(t.kind in (TokenKind.IDENT, TokenKind.KEYWORD) for t in tokens), name
                words = " ".join(t.text.lower() for t in tokens)
                assert FIELD_CATALOG.resolve(words) == descriptor.key, name

    def test_resolve_sector(self):
        assert FIELD_CATALOG.resolve_sector("tech") == "IT"
        assert FIELD_CATALOG.resolve_sector("oil and gas") == "Oil & Gas"
        assert FIELD_CATALOG.resolve_sector("Pharmaceuticals") == "Pharma"
        assert FIELD_CATALOG.resolve_sector("Narnia") is None

    def test_ambiguous_sector_word(self):
        assert FIELD_CATALOG.resolve_sector("it") is None
        assert FIELD_CATALOG.resolve_sector("IT") == "IT"
        assert FIELD_CATALOG.resolve_sector("it", anchored=True) == "IT"

    def test_normalize_sector(self):
        assert FIELD_CATALOG.normalize_sector("Information Technology") == "IT"
        assert FIELD_CATALOG.normalize_sector("banks") == "Banking"
        assert FIELD_CATALOG.normalize_sector("Shipping ") == "Shipping"
        assert FIELD_CATALOG.normalize_sector(None) == ""

    @pytest.mark.parametrize("number, unit, expected", [
        ("1", "K", 1_000),
        ("3", "L", 300_000),
        ("7", "M", 7_000_000),
        ("10", "Cr", 100_000_000),
        ("5", "B", 5_000_000_000),
        ("2", "T", 2_000_000_000_000),
        ("2.5", "B", 2_500_000_000),
        ("1.25", "Cr", 12_500_000),
    ])
    def test_coerce_currency_suffixes(self, number, unit, expected):
        value = FIELD_CATALOG.coerce("mcap", Decimal(number), unit, currency=True)
        assert value == expected
        assert isinstance(value, int)

    def test_coerce_percentage(self):
        assert FIELD_CATALOG.coerce("roe", Decimal("20"), "%") == 0.2
        assert FIELD_CATALOG.coerce("roe", Decimal("20")) == 0.2

    def test_coerce_ratio(self):
        assert FIELD_CATALOG.coerce("pe", Decimal("15"), "x") == 15.0
        assert FIELD_CATALOG.coerce("pe", Decimal("15")) == 15.0

    def test_coerce_text(self):
        assert FIELD_CATALOG.coerce("symbol", " tcs ") == "TCS"
        assert FIELD_CATALOG.coerce("sector", "banks") == "Banking"

    def test_unit_mismatch(self):
        with pytest.raises(UnitMismatchError):
            FIELD_CATALOG.coerce("pe", Decimal("5"), "B")
        with pytest.raises(UnitMismatchError):
            FIELD_CATALOG.coerce("roe", Decimal("5"), None, currency=True)
        with pytest.raises(UnitMismatchError):
            FIELD_CATALOG.coerce("volume", Decimal("5"), None, currency=True)

    def test_unknown_field(self):
        with pytest.raises(UnknownFieldError):
            FIELD_CATALOG.coerce("moonphase", Decimal("1"))

    def test_alias_collision_rejected(self):
        catalog = FieldCatalog()
        with pytest.raises(ValueError):
            catalog.register(FieldDescriptor(
                key="pe2", label="PE Two", attr="pe", kind=FieldKind.RATIO,
                aliases=frozenset({"p/e"}),
            ))

    def test_compare_missing_never_matches(self):
        security = Security(symbol="X", pe=None)
        assert FIELD_CATALOG.compare(Comparison("pe", Operator.LT, 100.0), security) is False
        assert FIELD_CATALOG.compare(Comparison("pe", Operator.GT, 0.0), security) is False

    def test_compare_text_case_insensitive(self):
        security = Security(symbol="X", name="Tata Motors")
        assert FIELD_CATALOG.compare(Comparison("name", Operator.EQ, "tata motors"), security)


# =============================================================================
# Test Lexer
# =============================================================================

class TestLexer:
    """Tests for Lexer."""

    def test_basic_tokens(self):
        tokens = tokenize("Mcap > $5B and ROE >= 20%")
        kinds = [t.kind for t in tokens]
        assert kinds == [
            TokenKind.IDENT, TokenKind.COMPARE_OP, TokenKind.NUMBER, TokenKind.KEYWORD,
            TokenKind.IDENT, TokenKind.COMPARE_OP, TokenKind.NUMBER,
        ]
        assert tokens[1].value == Operator.GT
        assert tokens[2].value == Decimal("5")
        assert tokens[2].unit == "B"
        assert tokens[2].currency is True
        assert tokens[5].value == Operator.GTE
        assert tokens[6].unit == "%"

    def test_indian_units(self):
        number = tokenize("Rs 500 Cr")[0]
        assert number.value == Decimal("500")
        assert number.unit == "Cr"
        assert number.currency is True
        assert tokenize("10 lakh")[0].unit == "L"

    def test_grouped_digits(self):
        assert tokenize("1,00,000")[0].value == Decimal("100000")
        assert tokenize("1,000")[0].value == Decimal("1000")

    def test_ratio_suffix(self):
        number = tokenize("PE < 15x")[2]
        assert number.value == Decimal("15")
        assert number.unit == "x"

    def test_word_operators(self):
        tokens = tokenize("ROE greater than 20 and price at most 500")
        ops = [t.value for t in tokens if t.kind == TokenKind.COMPARE_OP]
        assert ops == [Operator.GT, Operator.LTE]

    def test_words_containing_operator_words(self):
        tokens = tokenize("overvalued undervalued")
        assert [t.kind for t in tokens] == [TokenKind.IDENT, TokenKind.IDENT]

    def test_field_names_starting_with_digits(self):
        tokens = tokenize("52W High > 100")
        assert tokens[0].kind == TokenKind.IDENT
        assert tokens[0].text == "52W"

    def test_refinement_prefix(self):
        tokens = tokenize("+2 exclude Pharma")
        assert tokens[0].kind == TokenKind.REFINEMENT
        assert tokens[0].value == 2
        assert tokens[1].is_keyword("exclude")

    def test_quoted_phrase(self):
        tokens = tokenize('name = "Tata Motors"')
        assert tokens[2].kind == TokenKind.QUOTED
        assert tokens[2].value == "Tata Motors"

    def test_stray_characters_dropped(self):
        tokens = Lexer().tokenize("PE < 15 ; !")
        assert len(tokens) == 3


# =============================================================================
# Test Query Parser
# =============================================================================

class TestQueryParser:
    """Tests for QueryParser."""

    def test_and_binds_tighter_than_or(self, parser):
        result = parser.parse_text("PE < 15 and ROE > 20 or sector = IT")
        expected = Or(
            And(
                Comparison("pe", Operator.LT, 15.0),
                Comparison("roe", Operator.GT, 0.2),
            ),
            SectorIn(frozenset({"IT"})),
        )
        assert result.plan.predicate == expected
        assert result.intent.kind == IntentKind.NEW_SCREEN

    def test_adjacent_clauses_conjoined(self, parser):
        result = parser.parse_text("PE < 15 ROE > 20%")
        assert result.plan.predicate == And(
            Comparison("pe", Operator.LT, 15.0),
            Comparison("roe", Operator.GT, 0.2),
        )

    def test_parentheses(self, parser):
        result = parser.parse_text("(PE < 15 or PB < 2) and ROE > 15%")
        assert result.plan.predicate == And(
            Or(
                Comparison("pe", Operator.LT, 15.0),
                Comparison("pb", Operator.LT, 2.0),
            ),
            Comparison("roe", Operator.GT, 0.15),
        )

    def test_between_is_inclusive_range(self, parser):
        result = parser.parse_text("Dividend Yield between 2% and 5%")
        assert result.plan.predicate == And(
            Comparison("dividendYield", Operator.GTE, 0.02),
            Comparison("dividendYield", Operator.LTE, 0.05),
        )

    def test_currency_value(self, parser):
        result = parser.parse_text("Mcap > $5B")
        assert result.plan.predicate == Comparison("mcap", Operator.GT, 5_000_000_000)

    def test_word_operator(self, parser):
        result = parser.parse_text("price under 500")
        assert result.plan.predicate == Comparison("price", Operator.LT, 500)

    def test_sector_include_and_exclude(self, parser):
        result = parser.parse_text("IT and Pharma stocks exclude Pharma")
        assert result.plan.predicate == And(
            SectorIn(frozenset({"IT", "Pharma"})),
            SectorExclude(frozenset({"Pharma"})),
        )

    def test_in_sector_list(self, parser):
        result = parser.parse_text("PE < 30 in banks, energy sectors")
        assert result.plan.predicate == And(
            Comparison("pe", Operator.LT, 30.0),
            SectorIn(frozenset({"Banking", "Energy"})),
        )

    def test_not_in_sector(self, parser):
        result = parser.parse_text("PE < 30 not in Pharma")
        assert result.plan.predicate == And(
            Comparison("pe", Operator.LT, 30.0),
            SectorExclude(frozenset({"Pharma"})),
        )

    def test_sector_comparison_in_tree(self, parser):
        result = parser.parse_text("sector != Pharma")
        assert result.plan.predicate == SectorExclude(frozenset({"Pharma"}))

    def test_multiword_sector(self, parser):
        result = parser.parse_text("in oil and gas sector")
        assert result.plan.predicate == SectorIn(frozenset({"Oil & Gas"}))

    def test_lowercase_it_needs_anchor(self, parser):
        assert parser.parse_text("it stocks").plan.predicate == SectorIn(frozenset({"IT"}))
        with pytest.raises(EmptyQueryError):
            parser.parse_text("show me what it has")

    def test_text_field(self, parser):
        result = parser.parse_text('name = "Tata Motors"')
        assert result.plan.predicate == Comparison("name", Operator.EQ, "Tata Motors")
        result = parser.parse_text("symbol = tcs")
        assert result.plan.predicate == Comparison("symbol", Operator.EQ, "TCS")

    def test_qualitative_heuristics(self, parser):
        result = parser.parse_text("please show me cheap IT stocks with good ROE")
        assert result.plan.predicate == And(
            And(
                Comparison("pe", Operator.LT, 20.0),
                Comparison("roe", Operator.GT, 0.15),
            ),
            SectorIn(frozenset({"IT"})),
        )
        assert [h.phrase for h in result.heuristics] == ["cheap", "good ROE"]

    def test_qualifier_uses_field_direction(self, parser):
        assert parser.parse_text("low PE").plan.predicate == Comparison("pe", Operator.LT, 20.0)
        assert parser.parse_text("good PE").plan.predicate == Comparison("pe", Operator.LT, 20.0)
        assert parser.parse_text("high dividend").plan.predicate == Comparison(
            "dividendYield", Operator.GT, 0.02,
        )

    def test_heuristic_phrases(self, parser):
        assert parser.parse_text("large cap").plan.predicate == Comparison(
            "mcap", Operator.GTE, 200_000_000_000,
        )
        assert parser.parse_text("debt-free").plan.predicate == Comparison(
            "debtToEquity", Operator.LT, 0.1,
        )

    def test_volume_trend_phrases(self, parser):
        assert parser.parse_text("volume dropping").plan.predicate == Comparison(
            "volumeChange5d", Operator.LT, 0.0,
        )
        assert parser.parse_text("decreasing volume").plan.predicate == Comparison(
            "volumeChange5d", Operator.LT, 0.0,
        )
        assert parser.parse_text("IT stocks with volume rising").plan.predicate == And(
            Comparison("volumeChange5d", Operator.GT, 0.0),
            SectorIn(frozenset({"IT"})),
        )

    def test_volume_sort_phrase(self, parser):
        result = parser.parse_text("biggest volume drop")
        assert result.plan.sort == SortSpec("volumeChange5d", SortDirection.ASC)
        assert result.plan.predicate == TRUE
        assert result.skipped == []
        result = parser.parse_text("+2 largest volume spike")
        assert result.plan.sort == SortSpec("volumeChange5d", SortDirection.DESC)

    def test_exclude_negates_heuristic(self, parser):
        result = parser.parse_text("PE < 50 not cheap")
        assert result.plan.predicate == And(
            Comparison("pe", Operator.LT, 50.0),
            Comparison("pe", Operator.GTE, 20.0),
        )
        assert [h.phrase for h in result.heuristics] == ["not cheap"]

    def test_exclude_negates_qualifier(self, parser):
        result = parser.parse_text("+1 exclude high PE stocks")
        assert result.plan.predicate == Comparison("pe", Operator.LTE, 20.0)
        assert result.heuristics[0].phrase == "exclude high PE"
        assert result.skipped == []

    def test_exclude_negates_comparison(self, parser):
        assert parser.parse_text("without PE > 40").plan.predicate == Comparison(
            "pe", Operator.LTE, 40.0,
        )
        assert parser.parse_text("exclude ones with ROE between 10% and 20%").plan.predicate == Or(
            Comparison("roe", Operator.LT, 0.1),
            Comparison("roe", Operator.GT, 0.2),
        )

    def test_exclude_negates_range_heuristic(self, parser):
        assert parser.parse_text("not mid cap").plan.predicate == Or(
            Comparison("mcap", Operator.LT, 50_000_000_000),
            Comparison("mcap", Operator.GTE, 200_000_000_000),
        )

    def test_exclude_symbol(self, parser):
        result = parser.parse_text("+1 exclude TCS")
        assert result.plan.predicate == Comparison("symbol", Operator.NE, "TCS")

    def test_exclude_without_filter_is_skipped(self, parser):
        result = parser.parse_text("PE < 50 without foo")
        assert result.plan.predicate == Comparison("pe", Operator.LT, 50.0)
        assert [s.text for s in result.skipped] == ["without foo"]

        result = parser.parse_text("PE < 50 drop")
        assert result.plan.predicate == Comparison("pe", Operator.LT, 50.0)
        assert [s.text for s in result.skipped] == ["drop"]

    def test_exclude_never_sorts(self, parser):
        result = parser.parse_text("PE < 50 exclude highest ROE")
        assert result.plan.sort is None
        assert result.plan.predicate == Comparison("pe", Operator.LT, 50.0)
        assert [s.text for s in result.skipped] == ["exclude highest ROE"]

    def test_sector_clause_after_or_stays_in_tree(self, parser):
        result = parser.parse_text("PE < 10 or in Pharma sector")
        assert result.plan.predicate == Or(
            Comparison("pe", Operator.LT, 10.0),
            SectorIn(frozenset({"Pharma"})),
        )

    def test_sector_clause_before_or_stays_in_tree(self, parser):
        result = parser.parse_text("in IT or in Pharma")
        assert result.plan.predicate == Or(
            SectorIn(frozenset({"IT"})),
            SectorIn(frozenset({"Pharma"})),
        )
        result = parser.parse_text("IT stocks or PE < 10")
        assert result.plan.predicate == Or(
            SectorIn(frozenset({"IT"})),
            Comparison("pe", Operator.LT, 10.0),
        )

    def test_leading_sector_filters_whole_query(self, parser):
        result = parser.parse_text("IT sector PE < 15 or ROE > 20%")
        assert result.plan.predicate == And(
            Or(
                Comparison("pe", Operator.LT, 15.0),
                Comparison("roe", Operator.GT, 0.2),
            ),
            SectorIn(frozenset({"IT"})),
        )

    def test_add_is_filler(self, parser):
        result = parser.parse_text("+1 add dividend yield > 2%")
        assert result.plan.predicate == Comparison("dividendYield", Operator.GT, 0.02)
        assert result.skipped == []

    def test_unknown_terms_skipped(self, parser):
        result = parser.parse_text("PE < 15 and foo > 3")
        assert result.plan.predicate == Comparison("pe", Operator.LT, 15.0)
        assert [s.text for s in result.skipped] == ["foo", "> 3"]

    def test_unit_mismatch_skipped(self, parser):
        result = parser.parse_text("PE < 5B and ROE > 10%")
        assert result.plan.predicate == Comparison("roe", Operator.GT, 0.1)
        assert result.skipped[0].text == "PE < 5B"

    def test_sort_clauses(self, parser):
        assert parser.parse_text("sorted by Mcap ascending").plan.sort == SortSpec(
            "mcap", SortDirection.ASC,
        )
        assert parser.parse_text("sorted by PE").plan.sort == SortSpec("pe", SortDirection.DESC)
        assert parser.parse_text("descending volume").plan.sort == SortSpec(
            "volume", SortDirection.DESC,
        )
        assert parser.parse_text("highest dividend yield").plan.sort == SortSpec(
            "dividendYield", SortDirection.DESC,
        )

    def test_top_n_by_field(self, parser):
        plan = parser.parse_text("top 10 by market cap").plan
        assert plan.limit == 10
        assert plan.from_bottom is False
        assert plan.sort == SortSpec("mcap", SortDirection.DESC)

    def test_bottom_n_by_field(self, parser):
        plan = parser.parse_text("bottom 5 by ROE").plan
        assert plan.limit == 5
        assert plan.from_bottom is False
        assert plan.sort == SortSpec("roe", SortDirection.ASC)

    def test_bare_bottom_n(self, parser):
        plan = parser.parse_text("PE < 50 bottom 3").plan
        assert plan.limit == 3
        assert plan.from_bottom is True

    def test_last_limit_wins_within_query(self, parser):
        assert parser.parse_text("PE < 50 top 10 top 3").plan.limit == 3

    def test_refinement_intent(self, parser):
        result = parser.parse_text("+2 top 5")
        assert result.intent == QueryIntent(IntentKind.REFINEMENT, 2)
        assert result.plan.limit == 5

    @pytest.mark.parametrize("text", ["help", "?", "syntax", "how do I filter by sector"])
    def test_help(self, parser, text):
        assert parser.parse_text(text).intent.kind == IntentKind.HELP

    @pytest.mark.parametrize("text", ["clear", "reset context", "start over"])
    def test_clear(self, parser, text):
        assert parser.parse_text(text).intent.kind == IntentKind.CLEAR_CONTEXT

    def test_no_clauses(self, parser):
        with pytest.raises(EmptyQueryError):
            parser.parse_text("please show me")


# =============================================================================
# Test Refinement Resolver
# =============================================================================

class TestRefinementResolver:
    """Tests for RefinementResolver."""

    def test_new_screen_ignores_context(self):
        ctx = SessionContext()
        ctx.record(QueryPlan(Comparison("pe", Operator.LT, 15.0)), [])
        plan = QueryPlan(Comparison("roe", Operator.GT, 0.2))
        resolved = RefinementResolver().resolve(QueryIntent(), plan, ctx)
        assert resolved.plan == plan
        assert resolved.base is None

    def test_refinement_requires_context(self):
        with pytest.raises(NoContextToRefineError):
            RefinementResolver().resolve(QueryIntent.refinement(1), QueryPlan(), SessionContext())

    def test_exclude_composes_with_previous(self):
        ctx = SessionContext()
        previous_rows = [Security(symbol="A", sector="IT", pe=10.0)]
        ctx.record(QueryPlan(Comparison("pe", Operator.LT, 15.0)), previous_rows)

        resolved = RefinementResolver().resolve(
            QueryIntent.refinement(1),
            QueryPlan(SectorExclude(frozenset({"Pharma"}))),
            ctx,
        )
        assert resolved.plan.predicate == And(
            Comparison("pe", Operator.LT, 15.0),
            SectorExclude(frozenset({"Pharma"})),
        )
        assert symbols(resolved.base) == ["A"]
        assert resolved.is_refinement

    def test_limit_replaces_previous(self):
        previous = QueryPlan(TRUE, SortSpec("pe"), limit=10)
        merged = RefinementResolver.merge(previous, QueryPlan(limit=5))
        assert merged.limit == 5
        assert merged.sort == SortSpec("pe")

    def test_sort_replaces_previous(self):
        previous = QueryPlan(TRUE, SortSpec("pe"), limit=10)
        merged = RefinementResolver.merge(previous, QueryPlan(sort=SortSpec("roe")))
        assert merged.sort == SortSpec("roe")
        assert merged.limit == 10

    def test_clear_resets_context(self):
        ctx = SessionContext()
        ctx.record(QueryPlan(), [])
        RefinementResolver().resolve(QueryIntent(IntentKind.CLEAR_CONTEXT), QueryPlan(), ctx)
        assert ctx.is_empty
        assert list(ctx.history) == []


# =============================================================================
# Test Execution Engine
# =============================================================================

class TestExecutionEngine:
    """Tests for ExecutionEngine."""

    def test_concrete_scenario(self, parser, engine, scenario_universe):
        plan = parser.parse_text("IT sector PE < 15").plan
        assert symbols(engine.execute(scenario_universe, plan)) == ["A"]

    def test_exclude_wins(self, engine, sample_universe):
        plan = QueryPlan(And(
            SectorIn(frozenset({"IT", "Pharma"})),
            SectorExclude(frozenset({"Pharma"})),
        ))
        rows = engine.execute(sample_universe, plan)
        assert rows
        assert all(FIELD_CATALOG.normalize_sector(s.sector) == "IT" for s in rows)
        assert set(symbols(rows)) == {"TCS", "INFY", "WIPRO"}

    def test_missing_values_excluded(self, engine, sample_universe):
        plan = QueryPlan(Comparison("pe", Operator.LT, 100.0))
        assert "YESBANK" not in symbols(engine.execute(sample_universe, plan))

    @pytest.mark.parametrize("direction", [SortDirection.DESC, SortDirection.ASC])
    def test_nulls_sort_last(self, engine, sample_universe, direction):
        plan = QueryPlan(sort=SortSpec("dividendYield", direction))
        rows = engine.execute(sample_universe, plan)
        assert symbols(rows)[-3:] == ["WIPRO", "CIPLA", "YESBANK"]
        present = [s.dividend_yield for s in rows[:-3]]
        assert present == sorted(present, reverse=direction == SortDirection.DESC)

    def test_sort_is_stable(self, engine):
        universe = [
            Security(symbol="X", pe=10.0),
            Security(symbol="Y", pe=5.0),
            Security(symbol="Z", pe=10.0),
        ]
        rows = engine.execute(universe, QueryPlan(sort=SortSpec("pe", SortDirection.DESC)))
        assert symbols(rows) == ["X", "Z", "Y"]

    def test_top_and_bottom_limits(self, engine, ranked_universe):
        top = engine.execute(ranked_universe, QueryPlan(limit=3))
        assert symbols(top) == ["S01", "S02", "S03"]
        bottom = engine.execute(ranked_universe, QueryPlan(limit=3, from_bottom=True))
        assert symbols(bottom) == ["S18", "S19", "S20"]

    def test_total_counts_before_limit(self, engine, ranked_universe):
        result = engine.run(ranked_universe, QueryPlan(limit=5))
        assert len(result.rows) == 5
        assert result.total == 20

    def test_max_results_cap(self, ranked_universe):
        engine = ExecutionEngine(config=ScreenerConfig(max_results=4))
        result = engine.run(ranked_universe, QueryPlan())
        assert len(result.rows) == 4
        assert result.total == 20
        assert result.capped is True

    def test_unknown_sort_field_raises(self, engine, ranked_universe):
        with pytest.raises(EngineError):
            engine.execute(ranked_universe, QueryPlan(sort=SortSpec("moonphase")))

    def test_unsupported_operator_raises(self, engine, ranked_universe):
        plan = QueryPlan(Comparison("name", Operator.LT, "M"))
        with pytest.raises(EngineError):
            engine.execute(ranked_universe, plan)

    def test_clause_selectivity(self, engine, sample_universe):
        plan = QueryPlan(And(
            Comparison("roe", Operator.GT, 0.3),
            Comparison("pe", Operator.LT, 5.0),
        ))
        stats = engine.clause_selectivity(sample_universe, plan)
        assert stats[0].clause == Comparison("pe", Operator.LT, 5.0)
        assert stats[0].passing == 0
        assert stats[1].passing == 2
        assert stats[1].universe_size == 7


# =============================================================================
# Test Interpreter
# =============================================================================

class TestInterpreter:
    """Tests for Interpreter."""

    def test_full_sentence(self, interpreter):
        plan = QueryPlan(
            And(
                And(
                    Comparison("roe", Operator.GT, 0.2),
                    Comparison("pe", Operator.LT, 15.0),
                ),
                SectorExclude(frozenset({"Pharma"})),
            ),
            sort=SortSpec("mcap", SortDirection.DESC),
            limit=5,
        )
        text = interpreter.describe_plan(plan)
        assert text == (
            "Screening for: PE < 15.00 and ROE > 20.0%, excluding Pharma sector, "
            "sorted by Mcap descending, limited to top 5"
        )

    def test_sector_include_phrase(self, interpreter):
        plan = QueryPlan(And(
            Comparison("pe", Operator.LT, 15.0),
            SectorIn(frozenset({"Pharma", "IT"})),
        ))
        assert interpreter.describe_plan(plan) == "Screening for: PE < 15.00, in IT, Pharma sectors"

    def test_or_parenthesized_under_and(self, interpreter):
        plan = QueryPlan(And(
            Or(Comparison("pe", Operator.LT, 15.0), Comparison("pb", Operator.LT, 2.0)),
            Comparison("roe", Operator.GT, 0.15),
        ))
        assert interpreter.describe_plan(plan) == (
            "Screening for: (PE < 15.00 or PB < 2.00) and ROE > 15.0%"
        )

    def test_empty_plan(self, interpreter):
        assert interpreter.describe_plan(QueryPlan()) == "Screening for: all securities"

    @pytest.mark.parametrize("value, western, indian", [
        (5_000_000_000, "5B", "500Cr"),
        (150_000, "150K", "1.5L"),
        (1_500, "1.5K", "1500"),
        (1_234_567, "1234567", "1234567"),
        (200_000_000_000, "200B", "20000Cr"),
    ])
    def test_magnitude_rendering(self, value, western, indian):
        descriptor = FIELD_CATALOG.require("mcap")
        west = Interpreter(config=ScreenerConfig(currency_style=CurrencyStyle.WESTERN))
        east = Interpreter(config=ScreenerConfig(currency_style=CurrencyStyle.INDIAN))
        assert west.format_value(descriptor, value) == western
        assert east.format_value(descriptor, value) == indian

    def test_percentage_precision_kept(self, interpreter):
        descriptor = FIELD_CATALOG.require("roe")
        assert interpreter.format_value(descriptor, 0.155) == "15.5%"
        assert interpreter.format_value(descriptor, 0.2) == "20.0%"

    def test_refinement_prefix(self, interpreter):
        text, _ = interpreter.explain(
            QueryPlan(Comparison("pe", Operator.LT, 15.0)), QueryIntent.refinement(1), 3,
        )
        assert text.startswith("+1 refinement of previous results. Screening for: PE < 15.00")

    def test_zero_results_names_tightest_clause(self, interpreter, engine, sample_universe):
        plan = QueryPlan(And(
            Comparison("roe", Operator.GT, 0.3),
            Comparison("pe", Operator.LT, 5.0),
        ))
        selectivity = engine.clause_selectivity(sample_universe, plan)
        _, suggestions = interpreter.explain(plan, QueryIntent(), 0, selectivity=selectivity)
        assert "loosening PE < 5.00" in suggestions[0]

    def test_large_result_suggests_sort_and_limit(self, interpreter):
        plan = QueryPlan(Comparison("pe", Operator.LT, 100.0))
        _, suggestions = interpreter.explain(plan, QueryIntent(), 120)
        assert "sort and limit" in suggestions[0]

    def test_no_large_result_hint_with_sort_and_limit(self, interpreter):
        plan = QueryPlan(TRUE, SortSpec("pe"), limit=10)
        _, suggestions = interpreter.explain(plan, QueryIntent(), 120)
        assert suggestions == []

    def test_skipped_and_heuristics_reported(self, interpreter):
        _, suggestions = interpreter.explain(
            QueryPlan(Comparison("pe", Operator.LT, 20.0)),
            QueryIntent(),
            3,
            skipped=[SkippedClause("foo", "unrecognized term")],
            heuristics=[HeuristicMatch("cheap", Comparison("pe", Operator.LT, 20.0))],
        )
        assert "interpreted 'cheap' as PE < 20.00" in suggestions
        assert "ignored: foo" in suggestions

    @pytest.mark.parametrize("text", [
        "PE < 15 and ROE > 20% or sector = IT",
        "IT stocks PE < 15 exclude Pharma top 5 by Mcap",
        "(PE < 15 or PB < 2) and ROE > 15%",
        "Dividend Yield between 2% and 5% and Mcap > $5B",
        "bottom 3 by ROE",
        "PE < 50 bottom 3",
        'name = "Tata Motors"',
        "sector != Pharma and PE < 20",
        "in oil and gas, real estate sectors PE < 10",
        "cheap IT stocks with good ROE",
        "mid cap",
        "price <= 1.5K and volume > 2.5M sorted by RSI ascending",
        "52W High > 100 and Change Pct < -2%",
        "PE < 10 or in Pharma sector",
        "in IT or in Pharma",
        "PE < 50 not cheap",
        "not mid cap",
        "exclude TCS",
        "biggest volume drop",
    ])
    def test_explain_parse_round_trip(self, parser, interpreter, text):
        plan = parser.parse_text(text).plan
        rendered = interpreter.describe_plan(plan)
        reparsed = parser.parse_text(rendered).plan
        assert reparsed.equivalent(plan), rendered

    def test_help_text_lists_sectors(self, interpreter):
        text = interpreter.help_text()
        assert "Screener Query Syntax" in text
        assert "Oil & Gas" in text


# =============================================================================
# Test Models
# =============================================================================

class TestModels:
    """Tests for plan and session models."""

    def test_equivalent_ignores_order(self):
        a = Comparison("pe", Operator.LT, 15.0)
        b = Comparison("roe", Operator.GT, 0.2)
        assert QueryPlan(And(a, b)).equivalent(QueryPlan(And(b, a)))
        assert not QueryPlan(And(a, b)).equivalent(QueryPlan(Or(a, b)))

    def test_negate(self):
        assert negate(Comparison("pe", Operator.LT, 15.0)) == Comparison("pe", Operator.GTE, 15.0)
        assert negate(Comparison("symbol", Operator.EQ, "TCS")) == Comparison(
            "symbol", Operator.NE, "TCS",
        )
        assert negate(SectorIn(frozenset({"IT"}))) == SectorExclude(frozenset({"IT"}))
        a = Comparison("pe", Operator.GT, 10.0)
        b = Comparison("roe", Operator.LTE, 0.2)
        assert negate(And(a, b)) == Or(
            Comparison("pe", Operator.LTE, 10.0),
            Comparison("roe", Operator.GT, 0.2),
        )
        assert negate(negate(Or(a, b))) == Or(a, b)

    def test_history_bounded_most_recent_first(self):
        ctx = SessionContext(history_size=2)
        plans = [QueryPlan(limit=n) for n in (1, 2, 3)]
        for plan in plans:
            ctx.record(plan, [])
        assert [p.limit for p in ctx.history] == [3, 2]

    def test_security_to_dict_uses_catalog_keys(self):
        data = Security(symbol="X", dividend_yield=0.02).to_dict()
        assert data["symbol"] == "X"
        assert data["dividendYield"] == 0.02

    def test_response_to_dict(self):
        response = ScreenerResponse(data=[Security(symbol="X")], total=1, execution_time_ms=1.23456)
        data = response.to_dict()
        assert set(data) == {
            "type", "data", "columns", "interpretation", "suggestions", "total", "executionTimeMs",
        }
        assert data["type"] == "screener"
        assert data["executionTimeMs"] == 1.235


# =============================================================================
# Test Screener Facade
# =============================================================================

class TestScreener:
    """Tests for Screener."""

    def test_concrete_scenario(self, scenario_universe):
        response = Screener(lambda: scenario_universe).query("IT sector PE < 15")
        assert response.type == ResponseType.SCREENER
        assert symbols(response.data) == ["A"]
        assert response.total == 1
        assert "PE < 15.00" in response.interpretation
        assert "IT" in response.interpretation
        assert response.execution_time_ms >= 0

    def test_default_columns(self, scenario_universe):
        response = Screener(lambda: scenario_universe).query("in IT sector")
        assert response.columns == DEFAULT_COLUMNS

    def test_related_columns(self, scenario_universe):
        response = Screener(lambda: scenario_universe).query("PE < 15 and ROE > 10%")
        assert response.columns[:len(DEFAULT_COLUMNS)] == DEFAULT_COLUMNS
        for key in ("pb", "ps", "roe", "roa", "roce"):
            assert key in response.columns
        assert len(response.columns) <= 12

    def test_refinement_composition(self, scenario_universe):
        screener = Screener(lambda: scenario_universe)
        assert symbols(screener.query("PE < 15").data) == ["A", "C"]

        response = screener.query("+1 exclude Pharma")
        assert symbols(response.data) == ["A"]
        assert response.interpretation.startswith("+1 refinement")
        assert screener.history[0].predicate == And(
            Comparison("pe", Operator.LT, 15.0),
            SectorExclude(frozenset({"Pharma"})),
        )
        assert symbols(screener.last_results) == ["A"]

    def test_refinement_limit_replaces(self, ranked_universe):
        screener = Screener(lambda: ranked_universe)
        assert len(screener.query("PE < 100 top 10").data) == 10

        response = screener.query("+1 top 5")
        assert len(response.data) == 5
        assert screener.history[0].limit == 5

    def test_refinement_exclude_qualifier(self):
        universe = [Security(symbol=f"S{i * 5:02d}", sector="IT", pe=float(i * 5)) for i in range(1, 11)]
        screener = Screener(lambda: universe)
        assert screener.query("PE < 50").total == 9

        response = screener.query("+1 exclude high PE stocks")
        assert symbols(response.data) == ["S05", "S10", "S15", "S20"]
        assert "PE <= 20.00" in response.interpretation
        assert "interpreted 'exclude high PE' as PE <= 20.00" in response.suggestions

    def test_refinement_exclude_symbol(self, sample_universe):
        screener = Screener(lambda: sample_universe)
        assert "TCS" in symbols(screener.query("PE < 40").data)

        response = screener.query("+1 exclude TCS")
        assert response.type == ResponseType.SCREENER
        assert "TCS" not in symbols(response.data)
        assert response.total == 5

    def test_refinement_volume_sort(self):
        universe = [
            Security(symbol="UP", sector="IT", pe=10.0, volume_change_5d=0.3),
            Security(symbol="FLAT", sector="IT", pe=11.0, volume_change_5d=0.0),
            Security(symbol="DOWN", sector="IT", pe=12.0, volume_change_5d=-0.4),
        ]
        screener = Screener(lambda: universe)
        screener.query("IT stocks")

        response = screener.query("+2 biggest volume drop")
        assert symbols(response.data) == ["DOWN", "FLAT", "UP"]
        assert not any(s.startswith("ignored") for s in response.suggestions)

        response = screener.query("+3 volume dropping")
        assert symbols(response.data) == ["DOWN"]

    def test_refinement_add_clause(self, sample_universe):
        screener = Screener(lambda: sample_universe)
        screener.query("IT stocks")

        response = screener.query("+1 add dividend yield > 2%")
        assert symbols(response.data) == ["INFY"]
        assert "ignored: add" not in response.suggestions

    def test_refinement_without_context(self, scenario_universe):
        screener = Screener(lambda: scenario_universe)
        response = screener.query("+1 exclude Pharma")
        assert response.type == ResponseType.ERROR
        assert "+1" in response.interpretation
        assert screener.history == []

    def test_error_keeps_context(self, scenario_universe):
        screener = Screener(lambda: scenario_universe)
        screener.query("PE < 15")
        response = screener.query("xyzzy plugh")
        assert response.type == ResponseType.ERROR
        assert response.success is False
        assert response.suggestions == EXAMPLE_QUERIES
        assert symbols(screener.last_results) == ["A", "C"]

    def test_empty_input(self, scenario_universe):
        response = Screener(lambda: scenario_universe).query("   ")
        assert response.type == ResponseType.ERROR
        assert response.data == []

    def test_graceful_degradation(self, sample_universe):
        response = Screener(lambda: sample_universe).query(
            "please show me cheap IT stocks with good ROE"
        )
        assert response.type == ResponseType.SCREENER
        assert symbols(response.data) == ["WIPRO"]
        assert response.suggestions

    def test_help(self, scenario_universe):
        response = Screener(lambda: scenario_universe).query("help")
        assert response.type == ResponseType.HELP
        assert "Screener Query Syntax" in response.interpretation

    def test_clear(self, scenario_universe):
        screener = Screener(lambda: scenario_universe)
        screener.query("PE < 15")
        response = screener.query("clear")
        assert response.type == ResponseType.HELP
        assert screener.history == []
        assert screener.last_results == []

    def test_clear_context_method(self, scenario_universe):
        screener = Screener(lambda: scenario_universe)
        screener.query("PE < 15")
        screener.clear_context()
        assert screener.context.is_empty

    def test_zero_results_suggestion(self, sample_universe):
        response = Screener(lambda: sample_universe).query("PE < 1")
        assert response.total == 0
        assert "loosening PE < 1.00" in response.suggestions[0]

    def test_large_result_suggestion(self):
        universe = [Security(symbol=f"S{i}", pe=float(i)) for i in range(60)]
        response = Screener(lambda: universe).query("PE < 1000")
        assert response.total == 60
        assert any("sort and limit" in s for s in response.suggestions)

    def test_skipped_clause_reported(self, scenario_universe):
        response = Screener(lambda: scenario_universe).query("PE < 15 and foo")
        assert "ignored: foo" in response.suggestions

    def test_max_results(self, ranked_universe):
        screener = Screener(lambda: ranked_universe, config=ScreenerConfig(max_results=3))
        response = screener.query("PE < 100")
        assert len(response.data) == 3
        assert response.total == 20

    def test_set_universe_provider(self, scenario_universe, ranked_universe):
        screener = Screener(lambda: scenario_universe)
        screener.set_universe_provider(lambda: ranked_universe)
        assert screener.query("PE < 3").total == 2

    def test_engine_error_propagates(self, scenario_universe):
        class BrokenParser:
            def parse_text(self, text):
                return ParseResult(QueryIntent(), QueryPlan(sort=SortSpec("moonphase")), clause_count=1)

        screener = Screener(lambda: scenario_universe)
        screener.parser = BrokenParser()
        with pytest.raises(EngineError):
            screener.query("anything")

    def test_query_logged(self, scenario_universe, caplog):
        with caplog.at_level(logging.INFO, logger="src.nlscreen.screener"):
            Screener(lambda: scenario_universe).query("PE < 15")
        assert any("Query answered" in r.getMessage() for r in caplog.records)

    def test_new_screener_reads_settings(self, monkeypatch, ranked_universe):
        monkeypatch.setenv("NLSCREEN_MAX_RESULTS", "2")
        screener = new_screener(lambda: ranked_universe)
        assert screener.config.max_results == 2
        assert len(screener.query("PE < 100").data) == 2


# =============================================================================
# Test pandas Universe Adapter
# =============================================================================

class TestUniverseAdapter:
    """Tests for DataFrame conversion."""

    def test_universe_from_frame(self):
        df = pd.DataFrame({
            "symbol": ["A", "B"],
            "sector": ["IT", "Pharma"],
            "pe": [10.0, float("nan")],
            "changePct": [0.01, 0.02],
            "market cap": [1e9, 2e9],
            "unrelated": ["x", "y"],
        })
        universe = universe_from_frame(df)
        assert symbols(universe) == ["A", "B"]
        assert universe[0].pe == 10.0
        assert universe[1].pe is None
        assert universe[0].change_pct == 0.01
        assert universe[1].mcap == 2e9

    def test_symbols_from_index(self):
        df = pd.DataFrame({"pe": [12.0]}, index=["TCS"])
        assert symbols(universe_from_frame(df)) == ["TCS"]

    def test_missing_symbol_rejected(self):
        with pytest.raises(ValueError):
            universe_from_frame(pd.DataFrame({"pe": [1.0]}))

    def test_frame_feeds_screener(self):
        df = pd.DataFrame({
            "symbol": ["A", "B", "C"],
            "sector": ["IT", "IT", "Pharma"],
            "pe": [10.0, 20.0, 8.0],
        })
        universe = universe_from_frame(df)
        response = Screener(lambda: universe).query("IT sector PE < 15")
        frame = results_to_frame(response)
        assert list(frame.columns) == response.columns
        assert frame["symbol"].tolist() == ["A"]

    def test_empty_results_frame(self, scenario_universe):
        response = Screener(lambda: scenario_universe).query("PE < 1")
        frame = results_to_frame(response)
        assert len(frame) == 0
        assert list(frame.columns) == response.columns
