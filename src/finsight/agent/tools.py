"""LangChain tool definitions exposed to the reasoning model.

Three data tools complement the document knowledge base:

* ``get_real_gdp_growth`` — IMF datamapper, indicator ``NGDP_RPCH``.
* ``get_exchange_rate`` — latest rates from the exchange-rate API.
* ``get_cpi`` — monthly CPI inflation from the local tabular store.

Every tool turns its own failures into explanatory text; the model reads
that text like any other result.

Dependency-injection note
-------------------------
``get_cpi`` needs a :class:`~finsight.storage.cpi_store.CpiStore`, so it is
built per store by :func:`make_cpi_tool`.  :func:`build_tool_registry`
returns the name → tool mapping the agent binds.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from finsight.config import settings
from finsight.storage.cpi_store import CpiStore

logger = logging.getLogger(__name__)

GDP_INDICATOR = "NGDP_RPCH"


# ---------------------------------------------------------------------------
# Argument schemas
# ---------------------------------------------------------------------------


class GdpGrowthInput(BaseModel):
    country_code: str = Field(
        description="The 3-letter ISO country code (e.g., 'USA', 'GBR', 'FRA', 'MDA', 'DEU')"
    )
    period: str = Field(description="The year for which to get the GDP growth rate (e.g., '2024', '2025')")


class ExchangeRateInput(BaseModel):
    from_currency: str = Field(description="The source currency code (e.g., 'USD', 'EUR', 'GBP')")
    to_currency: str = Field(description="The target currency code (e.g., 'USD', 'EUR', 'GBP')")
    date: str | None = Field(default=None, description="Optional date in YYYY-MM-DD format")


class CpiInput(BaseModel):
    country_code: str = Field(description="The 3-letter ISO country code (e.g., 'USA', 'GBR', 'FRA', 'DEU')")
    year: str | None = Field(default=None, description="Optional year filter (e.g., '2024', '2025')")
    month: str | None = Field(default=None, description="Optional month filter (1-12)")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_json(url: str, params: dict[str, Any] | None = None) -> Any:
    response = requests.get(url, params=params, timeout=settings.http_timeout_seconds)
    response.raise_for_status()
    return response.json()


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@tool("get_real_gdp_growth", args_schema=GdpGrowthInput)
def get_real_gdp_growth(country_code: str, period: str) -> str:
    """Get the real GDP growth rate for a specific country and period from IMF data."""
    code = country_code.upper()
    try:
        data = _get_json(
            f"{settings.imf_api_base_url}/{GDP_INDICATOR}/{code}",
            params={"periods": period},
        )
    except (requests.RequestException, ValueError) as exc:
        logger.error("IMF request failed for %s/%s: %s", code, period, exc)
        return f"Error fetching real GDP growth data: {exc}"

    series = ((data or {}).get("values") or {}).get(GDP_INDICATOR) or {}
    value = (series.get(code) or {}).get(str(period))
    if value is None:
        return (
            f"Could not fetch real GDP growth rate for {code} for period {period}. "
            "Please check that the country code and period are valid."
        )
    return f"Real GDP growth rate for {code} in {period}: {value}%"


@tool("get_exchange_rate", args_schema=ExchangeRateInput)
def get_exchange_rate(from_currency: str, to_currency: str, date: str | None = None) -> str:
    """Get the exchange rate between two currencies."""
    base, quote = from_currency.upper(), to_currency.upper()
    try:
        data = _get_json(f"{settings.exchange_rate_api_base_url}/{base}")
    except (requests.RequestException, ValueError) as exc:
        logger.error("Exchange rate request failed for %s/%s: %s", base, quote, exc)
        return f"Error fetching exchange rate: {exc}"

    rate = ((data or {}).get("rates") or {}).get(quote)
    if not rate:
        return f"Could not fetch exchange rate for {base}/{quote}"

    result = f"Exchange rate from {base} to {quote}: {rate}"
    if date:
        # The API only serves the latest rates.
        result += f" (latest available rate; historical rate for {date} not available)"
    return result


def make_cpi_tool(cpi_store: CpiStore | None) -> BaseTool:
    """Build ``get_cpi`` bound to *cpi_store*.

    With no store the tool still exists but answers that the service is
    unavailable.
    """

    @tool("get_cpi", args_schema=CpiInput)
    def get_cpi(country_code: str, year: str | None = None, month: str | None = None) -> str:
        """Get Consumer Price Index (CPI) inflation data for a specific country."""
        if cpi_store is None:
            return "CPI data service not available"

        code = country_code.upper()
        try:
            summary = cpi_store.average(code, year, month)
        except Exception as exc:
            logger.exception("CPI query failed for %s", code)
            return f"Error fetching CPI data: {exc}"

        filters = []
        if year:
            filters.append(f"year {year}")
        if month:
            filters.append(f"month {month}")
        if summary is None:
            filter_text = f" for {', '.join(filters)}" if filters else ""
            return (
                f"No CPI inflation data found for {code}{filter_text}. "
                "Please check that the country code is valid and data is available."
            )

        period = ", ".join(filters) if filters else "all available periods"
        result = f"CPI inflation rate for {summary.ref_area_name} ({code}) in {period}: {summary.inflation_pct:.2f}%"
        if summary.observations > 1:
            result += f" (mean of {summary.observations} monthly observations)"
        return result

    return get_cpi


def build_tool_registry(cpi_store: CpiStore | None = None) -> dict[str, BaseTool]:
    """Name → tool mapping of every tool offered to the model."""
    tools = [get_real_gdp_growth, get_exchange_rate, make_cpi_tool(cpi_store)]
    return {t.name: t for t in tools}
