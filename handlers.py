import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from mcp.types import CallToolResult
from pydantic import BaseModel

from market import MarketData, normalize_symbol, to_plain, yahoo_finance
from schemas import Interval, Period, StatementType

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

PERIOD_DAYS = {
    "1d": 1,
    "5d": 5,
    "1mo": 30,
    "3mo": 90,
    "6mo": 180,
    "1y": 365,
    "2y": 730,
    "5y": 1825,
}

FUNDAMENTALS_MODULES: dict[str, str] = {
    "income": "financials",
    "balance": "balance-sheet",
    "cashflow": "cash-flow",
}

COMPANY_INFO_MODULES = ["assetProfile", "defaultKeyStatistics", "summaryDetail", "price"]


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    """The envelope every tool returns: one text block, isError set only on failure."""

    content: list[TextContent]
    isError: bool | None = None

    @classmethod
    def ok(cls, payload: Any) -> "ToolResult":
        return cls(content=[TextContent(text=json.dumps(to_plain(payload), indent=2))])

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls(content=[TextContent(text=message)], isError=True)

    def to_call_tool_result(self) -> CallToolResult:
        return CallToolResult.model_validate(self.model_dump(exclude_none=True))


def first_present(*values):
    """First truthy value in order, else None (short name -> long name style fallbacks)."""
    for value in values:
        if value:
            return value
    return None


def compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop fields the provider did not send."""
    return {key: value for key, value in data.items() if value is not None}


def failure_message(error: Exception) -> str:
    return str(error) or "Unknown error"


def get_start_date(period: str) -> datetime:
    """
    Start of the window for a period token, counted back from now (UTC).

    "max" is the Unix epoch; unrecognised tokens fall back to "1mo".
    """
    if period == "max":
        return EPOCH
    days = PERIOD_DAYS.get(period, PERIOD_DAYS["1mo"])
    return datetime.now(timezone.utc) - timedelta(days=days)


async def handle_get_quote(symbol: str, client: MarketData | None = None) -> ToolResult:
    client = client or yahoo_finance
    try:
        quote = await client.quote(normalize_symbol(symbol))
        data = compact({
            "symbol": quote.get("symbol"),
            "name": first_present(quote.get("shortName"), quote.get("longName")),
            "price": quote.get("regularMarketPrice"),
            "change": quote.get("regularMarketChange"),
            "changePercent": quote.get("regularMarketChangePercent"),
            "volume": quote.get("regularMarketVolume"),
            "marketCap": quote.get("marketCap"),
            "peRatio": quote.get("trailingPE"),
            "fiftyTwoWeekHigh": quote.get("fiftyTwoWeekHigh"),
            "fiftyTwoWeekLow": quote.get("fiftyTwoWeekLow"),
            "avgVolume": quote.get("averageDailyVolume3Month"),
            "open": quote.get("regularMarketOpen"),
            "previousClose": quote.get("regularMarketPreviousClose"),
            "dayHigh": quote.get("regularMarketDayHigh"),
            "dayLow": quote.get("regularMarketDayLow"),
        })
        return ToolResult.ok(data)
    except Exception as e:
        logger.warning("quote failed for %s: %s", symbol, e)
        return ToolResult.error(f"Error fetching quote for {symbol}: {failure_message(e)}")


async def handle_get_historical(
    symbol: str,
    period: Period = "1mo",
    interval: Interval = "1d",
    client: MarketData | None = None,
) -> ToolResult:
    client = client or yahoo_finance
    try:
        result = await client.chart(normalize_symbol(symbol), period1=get_start_date(period), interval=interval)
        bars = [
            compact({
                "date": bar.get("date"),
                "open": bar.get("open"),
                "high": bar.get("high"),
                "low": bar.get("low"),
                "close": bar.get("close"),
                "volume": bar.get("volume"),
            })
            for bar in result["quotes"]
        ]
        meta = result["meta"]
        return ToolResult.ok(compact({"symbol": meta.get("symbol"), "currency": meta.get("currency"), "data": bars}))
    except Exception as e:
        logger.warning("historical data failed for %s: %s", symbol, e)
        return ToolResult.error(f"Error fetching historical data for {symbol}: {failure_message(e)}")


async def handle_get_financials(
    symbol: str,
    statement: StatementType,
    quarterly: bool = False,
    client: MarketData | None = None,
) -> ToolResult:
    client = client or yahoo_finance
    try:
        # line items vary by company and statement
        statements = await client.fundamentals_time_series(
            normalize_symbol(symbol),
            period1=get_start_date("5y"),
            period_type="quarterly" if quarterly else "annual",
            module=FUNDAMENTALS_MODULES[statement],
            validate_result=False,
        )
        return ToolResult.ok({"type": statement, "quarterly": quarterly, "statements": statements})
    except Exception as e:
        logger.warning("financials failed for %s: %s", symbol, e)
        return ToolResult.error(f"Error fetching financials for {symbol}: {failure_message(e)}")


async def handle_get_company_info(symbol: str, client: MarketData | None = None) -> ToolResult:
    client = client or yahoo_finance
    try:
        result = await client.quote_summary(normalize_symbol(symbol), modules=COMPANY_INFO_MODULES)

        profile = result.get("assetProfile") or {}
        stats = result.get("defaultKeyStatistics") or {}
        summary = result.get("summaryDetail") or {}
        price = result.get("price") or {}

        data = compact({
            "symbol": normalize_symbol(symbol),
            "name": first_present(price.get("shortName"), price.get("longName")),
            "sector": profile.get("sector"),
            "industry": profile.get("industry"),
            "website": profile.get("website"),
            "employees": profile.get("fullTimeEmployees"),
            "description": profile.get("longBusinessSummary"),
            "country": profile.get("country"),
            "city": profile.get("city"),
            "keyStats": compact({
                "beta": stats.get("beta"),
                "priceToBook": stats.get("priceToBook"),
                "forwardPE": stats.get("forwardPE"),
                "profitMargins": stats.get("profitMargins"),
                "floatShares": stats.get("floatShares"),
                "sharesOutstanding": stats.get("sharesOutstanding"),
                "heldPercentInsiders": stats.get("heldPercentInsiders"),
                "heldPercentInstitutions": stats.get("heldPercentInstitutions"),
            }),
            "dividendInfo": compact({
                "dividendRate": summary.get("dividendRate"),
                "dividendYield": summary.get("dividendYield"),
                "exDividendDate": summary.get("exDividendDate"),
                "payoutRatio": summary.get("payoutRatio"),
            }),
        })
        return ToolResult.ok(data)
    except Exception as e:
        logger.warning("company info failed for %s: %s", symbol, e)
        return ToolResult.error(f"Error fetching company info for {symbol}: {failure_message(e)}")


async def handle_search_symbols(query: str, client: MarketData | None = None) -> ToolResult:
    client = client or yahoo_finance
    try:
        results = await client.search(query)
        data = [
            compact({
                "symbol": q["symbol"],
                "name": first_present(q.get("shortname"), q.get("longname")),
                "exchange": q.get("exchange"),
                "type": q["quoteType"],
            })
            for q in results.get("quotes") or []
            if q.get("quoteType") == "EQUITY" and "symbol" in q
        ]
        return ToolResult.ok(data)
    except Exception as e:
        logger.warning("search failed for %r: %s", query, e)
        return ToolResult.error(f'Error searching for "{query}": {failure_message(e)}')


async def handle_get_news(symbol: str, client: MarketData | None = None) -> ToolResult:
    client = client or yahoo_finance
    try:
        # News comes back from the same search endpoint as symbol lookups.
        results = await client.search(normalize_symbol(symbol))
        news = [
            compact({
                "title": n.get("title"),
                "publisher": n.get("publisher"),
                "link": n.get("link"),
                "publishedAt": n.get("providerPublishTime"),
            })
            for n in results.get("news") or []
        ]
        return ToolResult.ok(news)
    except Exception as e:
        logger.warning("news failed for %s: %s", symbol, e)
        return ToolResult.error(f"Error fetching news for {symbol}: {failure_message(e)}")
