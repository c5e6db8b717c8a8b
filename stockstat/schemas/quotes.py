"""
CONTRACT 1: Quote Ingestion

Input: QuoteIn (one parsed daily quote, any feed format)
Output: DailyQuote (stored quote as returned to readers)

Feed parsing happens upstream; this module only defines the normalized shape.
"""

from datetime import date
from pydantic import BaseModel, ConfigDict, Field, model_validator


class QuoteIn(BaseModel):
    """
    One trading day for one symbol.
    Sent by: feed reader / scheduler
    Received by: Statistic Service (process_quote_update)
    """

    symbol: str = Field(..., min_length=1, max_length=20)
    quote_date: date
    open: float = Field(..., gt=0)
    close: float = Field(..., gt=0)
    min: float = Field(..., gt=0, description="Lowest price of the day")
    max: float = Field(..., gt=0, description="Highest price of the day")
    volume: int = Field(..., ge=0)

    @model_validator(mode="after")
    def check_range(self) -> "QuoteIn":
        if self.min > self.max:
            raise ValueError(f"min {self.min} above max {self.max} for {self.symbol}")
        return self


class DailyQuote(BaseModel):
    """Stored daily quote."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    quote_date: date
    open: float
    close: float
    min: float
    max: float
    volume: int
