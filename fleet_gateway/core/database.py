"""
Fleet Gateway - Database Configuration
Async SQLAlchemy: primary store (PostgreSQL) and time-series store (TimescaleDB)
"""

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from fleet_gateway.core.config import settings


# Primary store: devices and missions
engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Time-series store: append-only fact records
timeseries_engine = create_async_engine(
    settings.timeseries_url,
    echo=False,
    pool_pre_ping=True,
)

timeseries_session_maker = async_sessionmaker(
    timeseries_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for primary store models."""
    pass


class TimeseriesBase(DeclarativeBase):
    """Base class for time-series models."""
    pass
