"""
Filter execution engine.

Executes a Criteria against the listing store deterministically:
substring matches for text fields, inclusive ranges for price and area,
equality for amenity flags, whitelisted sorting and page/limit pagination.
"""

import logging
from typing import List

from sqlalchemy import asc, desc, func, select

from ..models.criteria import Criteria, FLAG_FIELDS
from ..models.search import SearchResult
from ..services.database import Database, ListingRecord
from ..services.listing_store import ListingStore, to_listing

logger = logging.getLogger(__name__)

ALLOWED_SORT = {
    "createdAt": ListingRecord.created_at,
    "updatedAt": ListingRecord.updated_at,
    "lastSeenAt": ListingRecord.last_seen_at,
    "price": ListingRecord.price,
    "area": ListingRecord.area,
    "viewCount": ListingRecord.view_count,
}
DEFAULT_SORT = "createdAt"

TEXT_COLUMNS = {
    "district": ListingRecord.district,
    "room_type": ListingRecord.room_type,
    "near_mrt": ListingRecord.near_mrt,
}


class FilterEngine:
    """Criteria to paginated, sorted listings."""

    def __init__(self, database: Database, store: ListingStore, max_limit: int = 100):
        self.database = database
        self.store = store
        self.max_limit = max_limit

    def build_conditions(self, criteria: Criteria) -> List:
        """SQL conditions for a Criteria; only active listings are eligible."""
        conds = [ListingRecord.is_active.is_(True)]

        for attribute, column in TEXT_COLUMNS.items():
            value = getattr(criteria, attribute)
            if value:
                conds.append(column.icontains(value, autoescape=True))

        if criteria.min_price is not None:
            conds.append(ListingRecord.price >= criteria.min_price)
        if criteria.max_price is not None:
            conds.append(ListingRecord.price <= criteria.max_price)
        if criteria.min_area is not None:
            conds.append(ListingRecord.area >= criteria.min_area)
        if criteria.max_area is not None:
            conds.append(ListingRecord.area <= criteria.max_area)

        for flag in FLAG_FIELDS:
            if getattr(criteria, flag) is True:
                conds.append(getattr(ListingRecord, flag).is_(True))

        return conds

    def execute(
        self,
        criteria: Criteria,
        page: int = 1,
        limit: int = 20,
        sort_by: str = DEFAULT_SORT,
        sort_order: str = "desc",
    ) -> SearchResult:
        """
        Run a Criteria and return one page of results.

        Every returned listing has its view count incremented once; the
        returned items show the counts as they were before this call.

        Raises:
            ValueError: If page or limit is below 1.
        """
        if page < 1:
            raise ValueError("page must be at least 1")
        if limit < 1:
            raise ValueError("limit must be at least 1")
        limit = min(limit, self.max_limit)

        column = ALLOWED_SORT.get(sort_by, ALLOWED_SORT[DEFAULT_SORT])
        direction = asc if (sort_order or "").lower() == "asc" else desc
        conds = self.build_conditions(criteria)

        with self.database.session_scope() as session:
            total = session.scalar(select(func.count()).select_from(ListingRecord).where(*conds))
            records = session.scalars(
                select(ListingRecord)
                .where(*conds)
                .order_by(direction(column), direction(ListingRecord.id))
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            items = [to_listing(record) for record in records]

        self.store.increment_view_counts(item.id for item in items)

        logger.debug(
            f"Filter matched {total} listings, returning {len(items)} (page {page}, limit {limit})"
        )
        return SearchResult(items=items, total=total or 0, page=page, limit=limit)
