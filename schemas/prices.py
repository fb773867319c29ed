"""
Pydantic schemas for price points with validation
"""

from decimal import Decimal, InvalidOperation
from pydantic import BaseModel, Field, validator


class PricePoint(BaseModel):
    """
    One hourly price ready for upsert.

    Ensures:
    - timestamp is a non-negative epoch second
    - price is a finite decimal (negative prices are legitimate)
    - country is a lower-case two-letter code
    """

    timestamp: int = Field(..., ge=0, description="Epoch seconds at the start of the hour")
    price: Decimal = Field(..., description="Price in EUR/MWh")
    country: str = Field(..., min_length=2, max_length=2)

    @validator("country", pre=True)
    def normalize_country(cls, v):
        if v is None:
            raise ValueError("country is required")
        return str(v).strip().lower()

    @validator("price", pre=True)
    def coerce_price(cls, v):
        """Reject booleans and non-numeric values before Decimal coercion"""
        if v is None or isinstance(v, bool):
            raise ValueError("price must be numeric")
        try:
            value = Decimal(str(v))
        except InvalidOperation:
            raise ValueError(f"price is not a number: {v!r}")
        if not value.is_finite():
            raise ValueError("price must be finite")
        return value

    @validator("timestamp", pre=True)
    def coerce_timestamp(cls, v):
        if v is None or isinstance(v, bool):
            raise ValueError("timestamp must be an integer")
        if isinstance(v, float):
            if not v.is_integer():
                raise ValueError("timestamp must be a whole number of seconds")
            return int(v)
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "timestamp": 1704060000,
                "price": "85.3200",
                "country": "lt"
            }
        }
