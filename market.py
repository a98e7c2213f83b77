import asyncio
import logging
import math
import os
from datetime import datetime
from typing import Any, Protocol

import pandas as pd
import yfinance as yf
from dotenv import load_dotenv

load_dotenv(override=True)

logger = logging.getLogger(__name__)

search_quotes_count = int(os.getenv("YF_SEARCH_QUOTES_COUNT", "10"))
search_news_count = int(os.getenv("YF_SEARCH_NEWS_COUNT", "10"))


class UpstreamError(Exception):
    """Raised when Yahoo Finance has no usable answer for a request."""


def normalize_symbol(symbol: str) -> str:
    """Canonical ticker form sent upstream: "aapl" -> "AAPL"."""
    return symbol.upper()


class MarketData(Protocol):
    """The market-data capability the tool handlers depend on."""

    async def quote(self, symbol: str) -> dict[str, Any]: ...

    async def chart(self, symbol: str, period1: datetime, interval: str = "1d") -> dict[str, Any]: ...

    async def quote_summary(self, symbol: str, modules: list[str]) -> dict[str, Any]: ...

    async def search(self, query: str) -> dict[str, Any]: ...

    async def fundamentals_time_series(
        self,
        symbol: str,
        period1: datetime,
        period_type: str,
        module: str,
        validate_result: bool = True,
    ) -> list[dict[str, Any]]: ...


# -----------------------------
# Value conversion
# -----------------------------
def to_iso(moment) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. 2024-01-02T14:30:00.000Z"""
    stamp = pd.Timestamp(moment)
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize("UTC")
    stamp = stamp.tz_convert("UTC")
    return stamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{stamp.microsecond // 1000:03d}Z"


def to_plain(value):
    """Turn pandas/numpy values into JSON-ready Python values; NaN and NaT become None."""
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, (pd.Timestamp, datetime)):
        return to_iso(value)
    if hasattr(value, "item"):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def lower_first(name: str) -> str:
    """TotalRevenue -> totalRevenue; acronyms such as EBITDA are left alone."""
    if name[1:2].islower():
        return name[:1].lower() + name[1:]
    return name


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# -----------------------------
# quoteSummary module layout
# -----------------------------
# yfinance flattens Yahoo's quoteSummary modules into one info record;
# these field lists split it back into the modules callers ask for.
QUOTE_SUMMARY_MODULES: dict[str, tuple[str, ...]] = {
    "assetProfile": (
        "address1", "city", "state", "zip", "country", "phone", "website",
        "industry", "industryKey", "sector", "sectorKey", "longBusinessSummary",
        "fullTimeEmployees", "companyOfficers", "auditRisk", "boardRisk",
        "compensationRisk", "shareHolderRightsRisk", "overallRisk",
    ),
    "defaultKeyStatistics": (
        "beta", "priceToBook", "forwardPE", "profitMargins", "floatShares",
        "sharesOutstanding", "heldPercentInsiders", "heldPercentInstitutions",
        "enterpriseValue", "bookValue", "trailingEps", "forwardEps", "pegRatio",
        "sharesShort", "shortRatio", "shortPercentOfFloat", "impliedSharesOutstanding",
        "lastSplitFactor", "lastSplitDate", "lastFiscalYearEnd", "mostRecentQuarter",
        "earningsQuarterlyGrowth", "netIncomeToCommon", "enterpriseToRevenue",
        "enterpriseToEbitda", "52WeekChange", "SandP52WeekChange",
    ),
    "summaryDetail": (
        "previousClose", "open", "dayLow", "dayHigh", "regularMarketPreviousClose",
        "regularMarketOpen", "regularMarketDayLow", "regularMarketDayHigh",
        "dividendRate", "dividendYield", "exDividendDate", "payoutRatio",
        "fiveYearAvgDividendYield", "trailingAnnualDividendRate",
        "trailingAnnualDividendYield", "beta", "trailingPE", "forwardPE", "volume",
        "averageVolume", "averageVolume10days", "bid", "ask", "bidSize", "askSize",
        "marketCap", "fiftyTwoWeekLow", "fiftyTwoWeekHigh", "priceToSalesTrailing12Months",
        "fiftyDayAverage", "twoHundredDayAverage", "currency",
    ),
    "price": (
        "symbol", "shortName", "longName", "quoteType", "currency", "currencySymbol",
        "exchange", "exchangeName", "marketState", "regularMarketPrice",
        "regularMarketChange", "regularMarketChangePercent", "regularMarketTime",
        "regularMarketVolume", "marketCap",
    ),
}

# fundamentals module -> yfinance Ticker method
STATEMENT_FETCHERS = {
    "financials": "get_income_stmt",
    "balance-sheet": "get_balance_sheet",
    "cash-flow": "get_cashflow",
}

# period type -> (yfinance frequency, Yahoo periodType label)
STATEMENT_FREQUENCIES = {
    "annual": ("yearly", "12M"),
    "quarterly": ("quarterly", "3M"),
}


# -----------------------------
#  Yahoo Finance client
# -----------------------------
class YahooFinance:
    """
    Async access to Yahoo Finance through yfinance.

    yfinance is blocking, so every provider call runs in a worker thread.
    Results are plain dicts/lists shaped after Yahoo's quote, chart,
    quoteSummary, search and fundamentals-timeseries endpoints.
    """

    def __init__(self, quotes_count: int = search_quotes_count, news_count: int = search_news_count):
        self.quotes_count = quotes_count
        self.news_count = news_count

    async def quote(self, symbol: str) -> dict[str, Any]:
        logger.debug("quote %s", symbol)
        info = await asyncio.to_thread(lambda: yf.Ticker(symbol).info)
        if not info or "quoteType" not in info:
            raise UpstreamError(f"Quote not found for symbol: {symbol}")
        return to_plain(info)

    async def chart(self, symbol: str, period1: datetime, interval: str = "1d") -> dict[str, Any]:
        logger.debug("chart %s from %s every %s", symbol, period1, interval)

        def fetch():
            ticker = yf.Ticker(symbol)
            history = ticker.history(start=period1, interval=interval, auto_adjust=False)
            return history, ticker.history_metadata or {}

        history, metadata = await asyncio.to_thread(fetch)
        if history is None or history.empty:
            # a known symbol with no bars in the window still carries metadata
            if not metadata.get("symbol"):
                raise UpstreamError(f"No data found for {symbol}, symbol may be delisted")
            history = pd.DataFrame()

        quotes = []
        for moment, row in history.iterrows():
            quotes.append({
                "date": to_iso(moment),
                "open": to_plain(row.get("Open")),
                "high": to_plain(row.get("High")),
                "low": to_plain(row.get("Low")),
                "close": to_plain(row.get("Close")),
                "volume": to_plain(row.get("Volume")),
                "adjclose": to_plain(row.get("Adj Close")),
            })
        meta = {key: to_plain(metadata.get(key)) for key in ("symbol", "currency", "exchangeName", "timezone")}
        return {"meta": meta, "quotes": quotes}

    async def quote_summary(self, symbol: str, modules: list[str]) -> dict[str, Any]:
        unknown = [module for module in modules if module not in QUOTE_SUMMARY_MODULES]
        if unknown:
            raise UpstreamError(f"Unknown quoteSummary module(s): {', '.join(unknown)}")

        logger.debug("quoteSummary %s %s", symbol, modules)
        info = await asyncio.to_thread(lambda: yf.Ticker(symbol).info)
        if not info or "quoteType" not in info:
            raise UpstreamError(f"Quote not found for symbol: {symbol}")

        summary = {}
        for module in modules:
            fields = {key: to_plain(info[key]) for key in QUOTE_SUMMARY_MODULES[module] if key in info}
            if fields:
                summary[module] = fields
        return summary

    async def search(self, query: str) -> dict[str, Any]:
        logger.debug("search %r", query)
        result = await asyncio.to_thread(
            yf.Search, query, max_results=self.quotes_count, news_count=self.news_count
        )
        return {"quotes": to_plain(list(result.quotes or [])), "news": to_plain(list(result.news or []))}

    async def fundamentals_time_series(
        self,
        symbol: str,
        period1: datetime,
        period_type: str,
        module: str,
        validate_result: bool = True,
    ) -> list[dict[str, Any]]:
        """
        Statement records reported on or after period1, oldest first.

        Each record is {"date", "periodType", <lineItem>: value, ...}. Line items
        vary by company and statement; missing ones are left out. With
        validate_result every line item must be numeric or UpstreamError is raised.
        """
        if module not in STATEMENT_FETCHERS:
            raise UpstreamError(f"Unknown fundamentals module: {module}")
        if period_type not in STATEMENT_FREQUENCIES:
            raise UpstreamError(f"Unknown fundamentals period type: {period_type}")
        freq, label = STATEMENT_FREQUENCIES[period_type]

        logger.debug("fundamentalsTimeSeries %s %s %s", symbol, module, period_type)
        frame = await asyncio.to_thread(lambda: getattr(yf.Ticker(symbol), STATEMENT_FETCHERS[module])(freq=freq))
        if frame is None or frame.empty:
            return []

        start = pd.Timestamp(period1)
        if start.tzinfo is None:
            start = start.tz_localize("UTC")

        records = []
        for column in sorted(frame.columns, key=pd.Timestamp):
            reported = pd.Timestamp(column)
            if reported.tzinfo is None:
                reported = reported.tz_localize("UTC")
            if reported < start:
                continue
            record = {"date": to_iso(reported), "periodType": label}
            for item, value in frame[column].items():
                value = to_plain(value)
                if value is not None:
                    record[lower_first(str(item))] = value
            if validate_result:
                bad = [key for key, value in record.items() if key not in ("date", "periodType") and not _is_number(value)]
                if bad:
                    raise UpstreamError(f"Failed Yahoo Schema validation for {symbol}: {', '.join(bad)}")
            records.append(record)
        return records


yahoo_finance = YahooFinance()
