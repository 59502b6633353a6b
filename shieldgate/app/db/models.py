from sqlalchemy import BigInteger, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from shieldgate.app.db.base import Base


class TokenBucketRow(Base):
    """Durable token-bucket record, one row per client key."""

    __tablename__ = "token_buckets"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    last_refill_time: Mapped[int] = mapped_column(
        BigInteger, nullable=False, comment="epoch milliseconds"
    )


class SuspicionScoreRow(Base):
    """Durable suspicion record.

    ``version`` is bumped on every write and used as the compare-and-swap
    token by the SQL suspicion store.
    """

    __tablename__ = "suspicion_scores"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expiry: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True, comment="epoch milliseconds"
    )
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
