import logging
import sys

from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult

from handlers import (
    handle_get_company_info,
    handle_get_financials,
    handle_get_historical,
    handle_get_news,
    handle_get_quote,
    handle_search_symbols,
)
from market import MarketData
from mcp_params import log_level, server_name, transport
from schemas import IntervalOption, PeriodOption, QuarterlyOption, Query, StatementOption, Symbol

logger = logging.getLogger(__name__)


def create_server(client: MarketData | None = None) -> FastMCP:
    """Build a fresh server with the six market-data tools registered."""
    mcp = FastMCP(server_name)

    @mcp.tool(
        name="get_quote",
        description="Get real-time stock quote data including price, change, volume, and key metrics",
        structured_output=False,
    )
    async def get_quote(symbol: Symbol) -> CallToolResult:
        result = await handle_get_quote(symbol, client=client)
        return result.to_call_tool_result()

    @mcp.tool(
        name="get_historical",
        description="Get historical OHLCV (Open, High, Low, Close, Volume) price data",
        structured_output=False,
    )
    async def get_historical(
        symbol: Symbol,
        period: PeriodOption = "1mo",
        interval: IntervalOption = "1d",
    ) -> CallToolResult:
        result = await handle_get_historical(symbol, period, interval, client=client)
        return result.to_call_tool_result()

    @mcp.tool(
        name="get_financials",
        description="Get company financial statements (income statement, balance sheet, or cash flow)",
        structured_output=False,
    )
    async def get_financials(
        symbol: Symbol,
        statement: StatementOption,
        quarterly: QuarterlyOption = False,
    ) -> CallToolResult:
        result = await handle_get_financials(symbol, statement, quarterly, client=client)
        return result.to_call_tool_result()

    @mcp.tool(
        name="get_company_info",
        description="Get company profile including sector, industry, description, and key statistics",
        structured_output=False,
    )
    async def get_company_info(symbol: Symbol) -> CallToolResult:
        result = await handle_get_company_info(symbol, client=client)
        return result.to_call_tool_result()

    @mcp.tool(
        name="search_symbols",
        description="Search for stock symbols by company name or keywords",
        structured_output=False,
    )
    async def search_symbols(query: Query) -> CallToolResult:
        result = await handle_search_symbols(query, client=client)
        return result.to_call_tool_result()

    @mcp.tool(
        name="get_news",
        description="Get latest news for a stock symbol",
        structured_output=False,
    )
    async def get_news(symbol: Symbol) -> CallToolResult:
        result = await handle_get_news(symbol, client=client)
        return result.to_call_tool_result()

    return mcp


def main():
    # stdout carries the stdio transport, so logs go to stderr
    logging.basicConfig(
        level=log_level,
        stream=sys.stderr,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    logger.info("Starting %s MCP server over %s", server_name, transport)
    create_server().run(transport=transport)


if __name__ == "__main__":
    main()
