"""
SQLAlchemy schema and session management for the listing store.
"""

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class ListingRecord(Base):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True)
    source = Column(String(50), nullable=False, index=True)
    source_id = Column(String(255), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text)
    price = Column(Integer, nullable=False, default=0, index=True)
    deposit = Column(String(100))
    district = Column(String(100), index=True)
    address = Column(Text)
    near_mrt = Column(String(100))
    area = Column(Float)
    room_type = Column(String(50))
    floor = Column(String(50))
    total_floors = Column(String(50))
    has_parking = Column(Boolean, nullable=False, default=False)
    has_pet = Column(Boolean, nullable=False, default=False)
    has_cooking = Column(Boolean, nullable=False, default=False)
    has_elevator = Column(Boolean, nullable=False, default=False)
    has_balcony = Column(Boolean, nullable=False, default=False)
    has_washer = Column(Boolean, nullable=False, default=False)
    contact_name = Column(String(100))
    contact_phone = Column(String(50))
    url = Column(Text, nullable=False, default="")
    view_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_seen_at = Column(DateTime, nullable=False, default=datetime.now, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)

    images = relationship(
        "ListingImageRecord",
        order_by="ListingImageRecord.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    features = relationship(
        "ListingFeatureRecord",
        order_by="ListingFeatureRecord.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (UniqueConstraint("source", "source_id", name="uq_listing_source_key"),)

    def __repr__(self):
        return f"<ListingRecord(id={self.id}, source='{self.source}', source_id='{self.source_id}')>"


class PriceHistoryRecord(Base):
    __tablename__ = "price_history"

    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    price = Column(Integer, nullable=False)
    recorded_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (Index("ix_price_history_listing_recorded", "listing_id", "recorded_at"),)


class ListingImageRecord(Base):
    __tablename__ = "listing_images"

    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(Text, nullable=False)
    position = Column(Integer, nullable=False, default=0)


class ListingFeatureRecord(Base):
    __tablename__ = "listing_features"

    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    feature = Column(String(200), nullable=False)
    category = Column(String(50), nullable=False)


class CrawlRunRecord(Base):
    __tablename__ = "crawl_runs"

    id = Column(Integer, primary_key=True)
    source = Column(String(50), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    started_at = Column(DateTime, nullable=False, index=True)
    completed_at = Column(DateTime)
    total_found = Column(Integer, nullable=False, default=0)
    new_count = Column(Integer, nullable=False, default=0)
    updated_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)


class SearchQueryLogRecord(Base):
    __tablename__ = "search_query_logs"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(100), index=True)
    query_text = Column(Text, nullable=False)
    criteria = Column(JSON)
    result_count = Column(Integer)
    error_message = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class FavoriteRecord(Base):
    __tablename__ = "favorites"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(100), nullable=False)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (UniqueConstraint("user_id", "listing_id", name="uq_favorite_user_listing"),)


class NotificationRecord(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(100), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False, default="")
    data = Column(JSON)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class Database:
    """Engine and session factory for one database URL."""

    def __init__(self, url: str = "sqlite://", echo: bool = False):
        self.url = url
        self.engine = self._create_engine(url, echo)
        self.session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    @staticmethod
    def _create_engine(url: str, echo: bool):
        parsed = make_url(url)
        if parsed.get_backend_name() != "sqlite":
            return create_engine(url, echo=echo, pool_pre_ping=True)

        if parsed.database in (None, "", ":memory:"):
            # one shared connection, otherwise every session sees an empty database
            return create_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )

        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})

    def create_tables(self):
        Base.metadata.create_all(self.engine)

    def drop_tables(self):
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Transactional scope: commit on success, roll back on any error."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self):
        self.engine.dispose()
