"""FRED economic series observations."""

from datetime import date

from sqlalchemy import Date, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from fedsync.models.base import Base


class FredObservation(Base):
    __tablename__ = "fred_series"

    series_id: Mapped[str] = mapped_column(String(30), primary_key=True)
    obs_date: Mapped[date] = mapped_column(Date, primary_key=True)
    value: Mapped[float | None] = mapped_column(Float, nullable=True)
