"""
Review store.

Read-only access to the externally owned "reviews" table through a single
SQLAlchemy engine (one connection pool per process). Every lookup degrades
to empty results when the store is unavailable; nothing here raises to the
caller.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column, DateTime, Integer, MetaData, String, Table, Text, create_engine, func, select,
)
from sqlalchemy.engine import Engine, URL
from sqlalchemy.exc import SQLAlchemyError

from config import Settings, get_settings

logger = logging.getLogger(__name__)

metadata = MetaData()

# Owned and populated outside this service; defined here for queries and tests.
reviews = Table(
    "reviews",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_username", String(255)),
    Column("user_avatar", String(1024)),
    Column("product_name", String(500), nullable=False, index=True),
    Column("review_description", Text),
    Column("rating", Integer, nullable=False),
    Column("created_at", DateTime, server_default=func.now()),
)

EMPTY_STATS = {"total": 0, "averageRating": "0.0"}

engine: Optional[Engine] = None


def database_url(settings: Settings):
    if settings.database_url:
        return settings.database_url
    if not settings.db_name:
        return None
    return URL.create(
        "mysql+pymysql",
        username=settings.db_user,
        password=settings.db_password,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
    )


def init_database(settings: Optional[Settings] = None) -> Optional[Engine]:
    """
    Create the engine and probe one connection. On failure the store stays
    unavailable and lookups return empty results.
    """
    global engine
    settings = settings or get_settings()
    url = database_url(settings)
    if url is None:
        logger.warning("Reviews database not configured")
        engine = None
        return None
    try:
        kwargs: Dict[str, Any] = {"pool_pre_ping": True}
        if not str(url).startswith("sqlite"):
            kwargs.update(pool_size=10, max_overflow=0)
        candidate = create_engine(url, **kwargs)
        with candidate.connect():
            pass
    except SQLAlchemyError as e:
        logger.warning("Reviews database unavailable: %s", e)
        engine = None
        return None
    engine = candidate
    logger.info("Connected to reviews database")
    return engine


def use_engine(new_engine: Optional[Engine]) -> None:
    global engine
    engine = new_engine


def close_database() -> None:
    global engine
    if engine is not None:
        engine.dispose()
        engine = None


def get_reviews_by_product_name(product_name: str) -> List[Dict[str, Any]]:
    """All reviews whose product_name equals product_name, newest first."""
    if engine is None:
        return []
    query = (
        select(
            reviews.c.id,
            reviews.c.user_username,
            reviews.c.user_avatar,
            reviews.c.product_name,
            reviews.c.review_description,
            reviews.c.rating,
            reviews.c.created_at,
        )
        .where(reviews.c.product_name == product_name)
        .order_by(reviews.c.created_at.desc(), reviews.c.id.desc())
    )
    try:
        with engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(query)]
    except SQLAlchemyError as e:
        logger.warning("Review lookup failed for %r: %s", product_name, e)
        return []


def get_product_review_stats(product_name: str) -> Dict[str, Any]:
    """Count and average rating (one decimal, as a string) for a product."""
    if engine is None:
        return dict(EMPTY_STATS)
    query = select(
        func.count().label("total"),
        func.avg(reviews.c.rating).label("average"),
    ).where(reviews.c.product_name == product_name)
    try:
        with engine.connect() as conn:
            row = conn.execute(query).one()
    except SQLAlchemyError as e:
        logger.warning("Review stats failed for %r: %s", product_name, e)
        return dict(EMPTY_STATS)
    return {
        "total": int(row.total or 0),
        "averageRating": f"{float(row.average or 0):.1f}",
    }
