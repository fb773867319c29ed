from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Index, UniqueConstraint
from core.timeutils import utcnow
from models.base import Base


class PriceData(Base):
    """
    One hourly day-ahead price for one country.

    Design:
    - (timestamp, country) is the natural key; re-ingesting updates price in place
    - timestamp is epoch seconds at the start of the delivery hour
    - date is the UTC calendar date of the timestamp
    - Rows are never deleted by the sync engine
    """
    __tablename__ = "price_data"

    id = Column(Integer, primary_key=True, autoincrement=True)

    timestamp = Column(BigInteger, nullable=False)
    price = Column(Numeric(12, 4), nullable=False)
    country = Column(String(2), nullable=False)
    date = Column(String(10), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("timestamp", "country", name="uq_price_data_timestamp_country"),
        Index("idx_price_data_country_timestamp", "country", "timestamp"),
        Index("idx_price_data_date", "date"),
    )

    def __repr__(self):
        return f"<PriceData {self.country} {self.timestamp} {self.price}>"
