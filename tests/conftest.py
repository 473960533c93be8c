"""Pytest configuration and shared fixtures."""

import logging
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.nlscreen import Security  # noqa: E402


@pytest.fixture(autouse=True)
def reset_settings():
    """Clear cached settings and root handlers around each test."""
    from src.settings import get_settings

    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    get_settings.cache_clear()

    yield

    get_settings.cache_clear()
    root.handlers[:] = original_handlers
    root.setLevel(original_level)


@pytest.fixture
def scenario_universe():
    """Three securities: two IT, one Pharma."""
    return [
        Security(symbol="A", name="Alpha Systems", sector="IT", pe=10.0),
        Security(symbol="B", name="Beta Infotech", sector="IT", pe=20.0),
        Security(symbol="C", name="Cipla Labs", sector="Pharma", pe=8.0),
    ]


@pytest.fixture
def sample_universe():
    """Mixed universe with missing values."""
    return [
        Security(
            symbol="TCS", name="Tata Consultancy", sector="IT", industry="Software",
            price=3900.0, change_pct=0.012, mcap=14_000_000_000_000, pe=30.0, pb=14.0,
            roe=0.45, roa=0.30, debt_to_equity=0.05, dividend_yield=0.012,
            return_1y=0.18, volume=2_500_000, rsi=62.0,
        ),
        Security(
            symbol="INFY", name="Infosys", sector="Information Technology", industry="Software",
            price=1500.0, change_pct=-0.004, mcap=6_200_000_000_000, pe=24.0, pb=8.0,
            roe=0.31, roa=0.20, debt_to_equity=0.1, dividend_yield=0.025,
            return_1y=0.10, volume=5_000_000, rsi=48.0,
        ),
        Security(
            symbol="WIPRO", name="Wipro", sector="it", industry="Software",
            price=450.0, change_pct=0.0, mcap=2_400_000_000_000, pe=19.0, pb=3.1,
            roe=0.16, roa=0.11, debt_to_equity=0.2, dividend_yield=None,
            return_1y=0.05, volume=7_000_000, rsi=35.0,
        ),
        Security(
            symbol="SUNPHARMA", name="Sun Pharma", sector="Pharma", industry="Drugs",
            price=1200.0, change_pct=0.02, mcap=2_900_000_000_000, pe=35.0, pb=5.0,
            roe=0.15, roa=0.10, debt_to_equity=0.08, dividend_yield=0.009,
            return_1y=0.40, volume=1_800_000, rsi=71.0,
        ),
        Security(
            symbol="CIPLA", name="Cipla", sector="Pharmaceuticals", industry="Drugs",
            price=1400.0, change_pct=0.001, mcap=1_100_000_000_000, pe=27.0, pb=4.0,
            roe=0.14, roa=0.09, debt_to_equity=0.02, dividend_yield=None,
            return_1y=0.22, volume=1_200_000, rsi=55.0,
        ),
        Security(
            symbol="ONGC", name="Oil & Natural Gas", sector="Energy", industry="Exploration",
            price=270.0, change_pct=-0.015, mcap=3_400_000_000_000, pe=7.0, pb=0.9,
            roe=0.14, roa=0.07, debt_to_equity=0.4, dividend_yield=0.045,
            return_1y=0.35, volume=12_000_000, rsi=28.0,
        ),
        Security(
            symbol="YESBANK", name="Yes Bank", sector="Banking", industry="Private Bank",
            price=22.0, change_pct=0.03, mcap=680_000_000_000, pe=None, pb=1.5,
            roe=None, roa=None, debt_to_equity=None, dividend_yield=None,
            return_1y=-0.05, volume=90_000_000, rsi=None,
        ),
    ]
