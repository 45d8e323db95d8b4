"""Census County Business Patterns, one row per year/state/county/NAICS."""

from sqlalchemy import BigInteger, Integer, SmallInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from fedsync.models.base import Base


class CBPRecord(Base):
    __tablename__ = "cbp_data"

    year: Mapped[int] = mapped_column(SmallInteger, primary_key=True)
    fips_state: Mapped[str] = mapped_column(String(2), primary_key=True)
    # "000" marks state-level totals
    fips_county: Mapped[str] = mapped_column(String(3), primary_key=True)
    naics: Mapped[str] = mapped_column(String(6), primary_key=True)

    emp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emp_nf: Mapped[str | None] = mapped_column(String(1), nullable=True)
    qp1: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    qp1_nf: Mapped[str | None] = mapped_column(String(1), nullable=True)
    ap: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    ap_nf: Mapped[str | None] = mapped_column(String(1), nullable=True)
    est: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
