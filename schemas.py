from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

Period = Literal["1d", "5d", "1mo", "3mo", "6mo", "1y", "2y", "5y", "max"]
Interval = Literal["1d", "1wk", "1mo"]
StatementType = Literal["income", "balance", "cashflow"]

# Shared field types; market_server builds the tool input schemas from these.
Symbol = Annotated[
    str,
    Field(min_length=1, max_length=10, description="Stock ticker symbol (e.g., AAPL, GOOGL, MSFT)"),
]
PeriodOption = Annotated[Period, Field(description="Time period for historical data")]
IntervalOption = Annotated[Interval, Field(description="Data interval")]
StatementOption = Annotated[StatementType, Field(description="Type of financial statement")]
QuarterlyOption = Annotated[bool, Field(strict=True, description="Get quarterly data instead of annual")]
Query = Annotated[str, Field(min_length=1, description="Search query (company name or keywords)")]


class GetQuoteRequest(BaseModel):
    symbol: Symbol


class GetHistoricalRequest(BaseModel):
    symbol: Symbol
    period: PeriodOption = "1mo"
    interval: IntervalOption = "1d"


class GetFinancialsRequest(BaseModel):
    symbol: Symbol
    statement: StatementOption
    quarterly: QuarterlyOption = False


class GetCompanyInfoRequest(BaseModel):
    symbol: Symbol


class SearchSymbolsRequest(BaseModel):
    query: Query


class GetNewsRequest(BaseModel):
    symbol: Symbol


REQUEST_MODELS: dict[str, type[BaseModel]] = {
    "get_quote": GetQuoteRequest,
    "get_historical": GetHistoricalRequest,
    "get_financials": GetFinancialsRequest,
    "get_company_info": GetCompanyInfoRequest,
    "search_symbols": SearchSymbolsRequest,
    "get_news": GetNewsRequest,
}


def validate_request(tool_name: str, arguments: dict[str, Any]) -> BaseModel:
    """
    Check tool arguments against the declared request shape.

    Returns the request model with defaults filled in for omitted optional
    fields. Raises pydantic.ValidationError on a missing field, an empty or
    over-long string, or a value outside an enumerated set, and KeyError for
    an unknown tool name. Never touches the network.
    """
    model = REQUEST_MODELS[tool_name]
    return model.model_validate(arguments)
