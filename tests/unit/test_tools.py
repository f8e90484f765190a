"""Unit tests for the agent's data tools (HTTP calls mocked)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from finsight.agent.tools import (
    build_tool_registry,
    get_exchange_rate,
    get_real_gdp_growth,
    make_cpi_tool,
)
from finsight.storage.cpi_store import CpiStore
from finsight.storage.models import CpiObservation


def _response(payload: dict) -> MagicMock:
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


# ═══════════════════════════════════════════════════════════════════════
# GDP growth
# ═══════════════════════════════════════════════════════════════════════


class TestRealGdpGrowth:
    def test_returns_growth_rate(self) -> None:
        payload = {"values": {"NGDP_RPCH": {"USA": {"2024": 2.8}}}}
        with patch("finsight.agent.tools.requests.get", return_value=_response(payload)) as get:
            result = get_real_gdp_growth.invoke({"country_code": "usa", "period": "2024"})
        assert result == "Real GDP growth rate for USA in 2024: 2.8%"
        url = get.call_args.args[0]
        assert url.endswith("/NGDP_RPCH/USA")
        assert get.call_args.kwargs["params"] == {"periods": "2024"}

    def test_missing_period(self) -> None:
        payload = {"values": {"NGDP_RPCH": {"USA": {"2023": 2.5}}}}
        with patch("finsight.agent.tools.requests.get", return_value=_response(payload)):
            result = get_real_gdp_growth.invoke({"country_code": "USA", "period": "2024"})
        assert result.startswith("Could not fetch real GDP growth rate for USA for period 2024")

    def test_http_error_becomes_text(self) -> None:
        with patch("finsight.agent.tools.requests.get", side_effect=requests.ConnectionError("offline")):
            result = get_real_gdp_growth.invoke({"country_code": "USA", "period": "2024"})
        assert result == "Error fetching real GDP growth data: offline"


# ═══════════════════════════════════════════════════════════════════════
# Exchange rate
# ═══════════════════════════════════════════════════════════════════════


class TestExchangeRate:
    def test_returns_rate(self) -> None:
        payload = {"rates": {"EUR": 0.92}}
        with patch("finsight.agent.tools.requests.get", return_value=_response(payload)):
            result = get_exchange_rate.invoke({"from_currency": "usd", "to_currency": "eur"})
        assert result == "Exchange rate from USD to EUR: 0.92"

    def test_date_is_flagged_as_latest(self) -> None:
        payload = {"rates": {"EUR": 0.92}}
        with patch("finsight.agent.tools.requests.get", return_value=_response(payload)):
            result = get_exchange_rate.invoke({"from_currency": "USD", "to_currency": "EUR", "date": "2020-01-01"})
        assert "latest available rate" in result

    def test_unknown_currency(self) -> None:
        with patch("finsight.agent.tools.requests.get", return_value=_response({"rates": {}})):
            result = get_exchange_rate.invoke({"from_currency": "USD", "to_currency": "XYZ"})
        assert result == "Could not fetch exchange rate for USD/XYZ"

    def test_http_error_becomes_text(self) -> None:
        error = requests.HTTPError("404 Client Error")
        with patch("finsight.agent.tools.requests.get", return_value=MagicMock(raise_for_status=MagicMock(side_effect=error))):
            result = get_exchange_rate.invoke({"from_currency": "USD", "to_currency": "EUR"})
        assert result.startswith("Error fetching exchange rate:")


# ═══════════════════════════════════════════════════════════════════════
# CPI
# ═══════════════════════════════════════════════════════════════════════


class TestCpiTool:
    def test_average_for_year(self, cpi_store: CpiStore) -> None:
        cpi_store.upsert(
            [
                CpiObservation(ref_area_code="DEU", ref_area_name="Germany", time_period="2024-01-01", inflation_pct=2.0),
                CpiObservation(ref_area_code="DEU", ref_area_name="Germany", time_period="2024-02-01", inflation_pct=3.0),
            ]
        )
        result = make_cpi_tool(cpi_store).invoke({"country_code": "deu", "year": "2024"})
        assert result == "CPI inflation rate for Germany (DEU) in year 2024: 2.50% (mean of 2 monthly observations)"

    def test_single_month(self, cpi_store: CpiStore) -> None:
        cpi_store.upsert(
            [CpiObservation(ref_area_code="DEU", ref_area_name="Germany", time_period="2024-02-01", inflation_pct=3.0)]
        )
        result = make_cpi_tool(cpi_store).invoke({"country_code": "DEU", "year": "2024", "month": "2"})
        assert result == "CPI inflation rate for Germany (DEU) in year 2024, month 2: 3.00%"

    def test_no_data(self, cpi_store: CpiStore) -> None:
        result = make_cpi_tool(cpi_store).invoke({"country_code": "FRA", "year": "2024"})
        assert result.startswith("No CPI inflation data found for FRA for year 2024.")

    def test_without_store(self) -> None:
        assert make_cpi_tool(None).invoke({"country_code": "FRA"}) == "CPI data service not available"

    def test_store_error_becomes_text(self) -> None:
        store = MagicMock()
        store.average.side_effect = RuntimeError("database is locked")
        assert make_cpi_tool(store).invoke({"country_code": "FRA"}) == "Error fetching CPI data: database is locked"


def test_registry_names() -> None:
    assert set(build_tool_registry()) == {"get_real_gdp_growth", "get_exchange_rate", "get_cpi"}


@pytest.mark.parametrize("name", ["get_real_gdp_growth", "get_exchange_rate", "get_cpi"])
def test_tools_have_argument_descriptions(name: str) -> None:
    schema = build_tool_registry()[name].args
    assert all(field.get("description") for field in schema.values())
