"""
Listing persistence: listings with their price history, plus the narrow
favorite, notification and search-log contracts the core relies on.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import distinct, func, select, update
from sqlalchemy.exc import IntegrityError

from ..models.criteria import Criteria
from ..models.listing import FeatureTag, Listing, PriceHistoryEntry
from ..models.notification import Notification
from ..models.search import ListingStats, SearchQueryLog
from ..utils.error_handling import NotFound, PersistenceConflict
from .database import (
    Database,
    FavoriteRecord,
    ListingFeatureRecord,
    ListingImageRecord,
    ListingRecord,
    NotificationRecord,
    PriceHistoryRecord,
    SearchQueryLogRecord,
)

DESCRIPTIVE_FIELDS = (
    "title",
    "description",
    "deposit",
    "district",
    "address",
    "near_mrt",
    "area",
    "room_type",
    "floor",
    "total_floors",
    "has_parking",
    "has_pet",
    "has_cooking",
    "has_elevator",
    "has_balcony",
    "has_washer",
    "contact_name",
    "contact_phone",
    "url",
)

PRICE_BUCKETS = (
    ("<15K", 0, 15000),
    ("15K-25K", 15000, 25000),
    ("25K-35K", 25000, 35000),
    ("35K-50K", 35000, 50000),
    ("50K+", 50000, None),
)

SUGGESTION_COLUMNS = {
    "district": ListingRecord.district,
    "near_mrt": ListingRecord.near_mrt,
    "room_type": ListingRecord.room_type,
}


def to_listing(record: ListingRecord, history: Optional[List[PriceHistoryEntry]] = None) -> Listing:
    """Convert an ORM row into the domain model."""
    return Listing(
        id=record.id,
        source=record.source,
        source_id=record.source_id,
        price=record.price,
        images=[image.url for image in record.images],
        features=[FeatureTag(name=f.feature, category=f.category) for f in record.features],
        view_count=record.view_count,
        is_active=record.is_active,
        last_seen_at=record.last_seen_at,
        created_at=record.created_at,
        updated_at=record.updated_at,
        price_history=history or [],
        **{name: getattr(record, name) for name in DESCRIPTIVE_FIELDS},
    )


class ListingStore:
    """Repository over listings and their satellite tables."""

    def __init__(self, database: Database):
        self.database = database

    # Listings

    def find_by_key(self, source: str, source_id: str) -> Optional[Listing]:
        with self.database.session_scope() as session:
            record = session.scalars(
                select(ListingRecord).where(
                    ListingRecord.source == source,
                    ListingRecord.source_id == source_id,
                )
            ).first()
            return to_listing(record) if record else None

    def get_listing(self, listing_id: int, history_limit: Optional[int] = None) -> Listing:
        """
        Load one listing with its newest price history entries first.

        Raises:
            NotFound: If no listing has this id.
        """
        with self.database.session_scope() as session:
            record = session.get(ListingRecord, listing_id)
            if record is None:
                raise NotFound(f"Listing {listing_id} not found")
            history = self._price_history(session, listing_id, limit=history_limit, newest_first=True)
            return to_listing(record, history)

    def insert_listing(self, listing: Listing, now: datetime) -> Listing:
        """
        Insert a new listing and seed its price history.

        Raises:
            PersistenceConflict: If a listing with the same key already exists.
        """
        try:
            with self.database.session_scope() as session:
                record = ListingRecord(
                    source=listing.source,
                    source_id=listing.source_id,
                    price=listing.price,
                    view_count=0,
                    is_active=True,
                    last_seen_at=now,
                    created_at=now,
                    updated_at=now,
                    **{name: getattr(listing, name) for name in DESCRIPTIVE_FIELDS},
                )
                self._replace_children(record, listing)
                session.add(record)
                session.flush()
                session.add(PriceHistoryRecord(listing_id=record.id, price=listing.price, recorded_at=now))
                session.flush()
                created = to_listing(record, [PriceHistoryEntry(price=listing.price, recorded_at=now)])
        except IntegrityError as e:
            raise PersistenceConflict(
                f"Listing {listing.source}/{listing.source_id} already exists"
            ) from e
        return created

    def update_listing(
        self,
        listing_id: int,
        listing: Listing,
        now: datetime,
        append_price: Optional[int] = None,
    ) -> Listing:
        """
        Refresh descriptive fields and last-seen time of an existing listing.

        When append_price is given a price history entry is appended and the
        listing's current price moves to it.
        """
        with self.database.session_scope() as session:
            record = session.get(ListingRecord, listing_id)
            if record is None:
                raise NotFound(f"Listing {listing_id} not found")

            for name in DESCRIPTIVE_FIELDS:
                setattr(record, name, getattr(listing, name))
            self._replace_children(record, listing)
            record.last_seen_at = now
            record.updated_at = now
            record.is_active = True

            if append_price is not None:
                record.price = append_price
                session.add(PriceHistoryRecord(listing_id=listing_id, price=append_price, recorded_at=now))

            session.flush()
            return to_listing(record)

    @staticmethod
    def _replace_children(record: ListingRecord, listing: Listing):
        record.images = [ListingImageRecord(url=url, position=index) for index, url in enumerate(listing.images)]
        record.features = [
            ListingFeatureRecord(feature=tag.name, category=tag.category) for tag in listing.features
        ]

    def latest_price(self, listing_id: int) -> Optional[int]:
        with self.database.session_scope() as session:
            return session.scalars(
                select(PriceHistoryRecord.price)
                .where(PriceHistoryRecord.listing_id == listing_id)
                .order_by(PriceHistoryRecord.recorded_at.desc(), PriceHistoryRecord.id.desc())
                .limit(1)
            ).first()

    def price_history(self, listing_id: int) -> List[PriceHistoryEntry]:
        """Full price history, oldest first."""
        with self.database.session_scope() as session:
            return self._price_history(session, listing_id)

    @staticmethod
    def _price_history(session, listing_id: int, limit: Optional[int] = None, newest_first: bool = False):
        if newest_first:
            order = (PriceHistoryRecord.recorded_at.desc(), PriceHistoryRecord.id.desc())
        else:
            order = (PriceHistoryRecord.recorded_at.asc(), PriceHistoryRecord.id.asc())
        stmt = select(PriceHistoryRecord).where(PriceHistoryRecord.listing_id == listing_id).order_by(*order)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [
            PriceHistoryEntry(price=row.price, recorded_at=row.recorded_at) for row in session.scalars(stmt)
        ]

    def increment_view_counts(self, listing_ids: Iterable[int]) -> int:
        ids = list(listing_ids)
        if not ids:
            return 0
        with self.database.session_scope() as session:
            result = session.execute(
                update(ListingRecord)
                .where(ListingRecord.id.in_(ids))
                .values(view_count=ListingRecord.view_count + 1)
            )
            return result.rowcount

    def deactivate_stale(self, older_than_days: int, now: Optional[datetime] = None) -> int:
        """Soft-deactivate active listings not seen for the given number of days."""
        now = now or datetime.now()
        threshold = now - timedelta(days=older_than_days)
        with self.database.session_scope() as session:
            result = session.execute(
                update(ListingRecord)
                .where(ListingRecord.is_active.is_(True), ListingRecord.last_seen_at < threshold)
                .values(is_active=False, updated_at=now)
            )
            return result.rowcount

    def distinct_values(self, column: str, needle: str, limit: int = 5) -> List[str]:
        """Distinct non-blank values of a listing column containing needle."""
        col = SUGGESTION_COLUMNS[column]
        with self.database.session_scope() as session:
            values = session.scalars(
                select(distinct(col))
                .where(
                    ListingRecord.is_active.is_(True),
                    col.is_not(None),
                    col != "",
                    col.icontains(needle, autoescape=True),
                )
                .order_by(col)
                .limit(limit)
            ).all()
        return [value for value in values if value and value.strip()]

    def listing_stats(self, now: Optional[datetime] = None) -> ListingStats:
        now = now or datetime.now()
        active = ListingRecord.is_active.is_(True)
        priced = (active, ListingRecord.price > 0)

        with self.database.session_scope() as session:
            total = session.scalar(select(func.count()).select_from(ListingRecord).where(active))
            avg_price = session.scalar(select(func.avg(ListingRecord.price)).where(*priced))

            distribution = []
            for label, low, high in PRICE_BUCKETS:
                conds = [*priced, ListingRecord.price >= low]
                if high is not None:
                    conds.append(ListingRecord.price < high)
                count = session.scalar(select(func.count()).select_from(ListingRecord).where(*conds))
                distribution.append({"range": label, "count": count})

            district_rows = session.execute(
                select(
                    ListingRecord.district,
                    func.count(ListingRecord.id).label("listing_count"),
                    func.avg(ListingRecord.price).label("avg_price"),
                )
                .where(*priced, ListingRecord.district.is_not(None))
                .group_by(ListingRecord.district)
                .order_by(func.count(ListingRecord.id).desc(), ListingRecord.district)
                .limit(10)
            ).all()

            recent = session.scalar(
                select(func.count())
                .select_from(ListingRecord)
                .where(active, ListingRecord.created_at >= now - timedelta(hours=24))
            )

        return ListingStats(
            total_properties=total or 0,
            avg_price=round(avg_price) if avg_price else 0,
            price_distribution=distribution,
            district_stats=[
                {"district": row.district, "count": row.listing_count, "avgPrice": round(row.avg_price or 0)}
                for row in district_rows
            ],
            recent_additions=recent or 0,
        )

    # Favorites and notifications

    def add_favorite(self, user_id: str, listing_id: int):
        with self.database.session_scope() as session:
            session.add(FavoriteRecord(user_id=user_id, listing_id=listing_id))

    def favorite_user_ids(self, listing_id: int) -> List[str]:
        with self.database.session_scope() as session:
            return list(
                session.scalars(
                    select(FavoriteRecord.user_id)
                    .where(FavoriteRecord.listing_id == listing_id)
                    .order_by(FavoriteRecord.id)
                )
            )

    def create_notification(self, notification: Notification) -> Notification:
        notification.validate()
        with self.database.session_scope() as session:
            record = NotificationRecord(
                user_id=notification.user_id,
                type=notification.type,
                title=notification.title,
                content=notification.content,
                data=notification.data,
                created_at=notification.created_at or datetime.now(),
            )
            session.add(record)
            session.flush()
            notification.id = record.id
            notification.created_at = record.created_at
        return notification

    def list_notifications(self, user_id: str) -> List[Notification]:
        with self.database.session_scope() as session:
            records = session.scalars(
                select(NotificationRecord)
                .where(NotificationRecord.user_id == user_id)
                .order_by(NotificationRecord.created_at.desc(), NotificationRecord.id.desc())
            )
            return [
                Notification(
                    id=r.id,
                    user_id=r.user_id,
                    type=r.type,
                    title=r.title,
                    content=r.content,
                    data=r.data or {},
                    is_read=r.is_read,
                    created_at=r.created_at,
                )
                for r in records
            ]

    # Search query log

    def create_search_log(self, query_text: str, user_id: Optional[str] = None) -> int:
        with self.database.session_scope() as session:
            record = SearchQueryLogRecord(query_text=query_text, user_id=user_id, created_at=datetime.now())
            session.add(record)
            session.flush()
            return record.id

    def update_search_log(
        self,
        log_id: int,
        criteria: Optional[Criteria] = None,
        result_count: Optional[int] = None,
        error_message: Optional[str] = None,
    ):
        """Backfill the fields that are only known after the search ran."""
        values: Dict[str, Any] = {}
        if criteria is not None:
            values["criteria"] = criteria.to_dict()
        if result_count is not None:
            values["result_count"] = result_count
        if error_message is not None:
            values["error_message"] = error_message
        if not values:
            return
        with self.database.session_scope() as session:
            session.execute(update(SearchQueryLogRecord).where(SearchQueryLogRecord.id == log_id).values(**values))

    def get_search_log(self, log_id: int) -> SearchQueryLog:
        with self.database.session_scope() as session:
            record = session.get(SearchQueryLogRecord, log_id)
            if record is None:
                raise NotFound(f"Search log {log_id} not found")
            return SearchQueryLog(
                id=record.id,
                query_text=record.query_text,
                created_at=record.created_at,
                user_id=record.user_id,
                criteria=Criteria.from_dict(record.criteria) if record.criteria is not None else None,
                result_count=record.result_count,
                error_message=record.error_message,
            )
