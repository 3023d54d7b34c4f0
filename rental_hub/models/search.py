"""
Search result and audit models.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .criteria import Criteria
from .listing import Listing


@dataclass
class SearchResult:
    """One page of listings matching a Criteria."""

    items: List[Listing]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> Dict[str, int]:
        return {"page": self.page, "limit": self.limit, "total": self.total, "pages": self.pages}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "properties": [listing.to_dict() for listing in self.items],
            "pagination": self.pagination(),
        }


@dataclass
class SearchQueryLog:
    """Audit record of one natural-language search."""

    id: int
    query_text: str
    created_at: datetime
    user_id: Optional[str] = None
    criteria: Optional[Criteria] = None
    result_count: Optional[int] = None
    error_message: Optional[str] = None


@dataclass
class Suggestion:
    """Autocomplete candidate."""

    type: str  # "district", "mrt" or "roomType"
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "value": self.value}


@dataclass
class ListingStats:
    """Aggregate statistics over active listings."""

    total_properties: int
    avg_price: int
    price_distribution: List[Dict[str, Any]] = field(default_factory=list)
    district_stats: List[Dict[str, Any]] = field(default_factory=list)
    recent_additions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalProperties": self.total_properties,
            "avgPrice": self.avg_price,
            "priceDistribution": list(self.price_distribution),
            "districtStats": list(self.district_stats),
            "recentAdditions": self.recent_additions,
        }
