"""
Listing data models for the Taipei Rental Hub.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

AMENITY_FLAGS = (
    "has_parking",
    "has_pet",
    "has_cooking",
    "has_elevator",
    "has_balcony",
    "has_washer",
)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _text_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    elif not isinstance(value, (list, tuple)):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


@dataclass
class RawRecord:
    """Record as extracted from a source page, before normalisation."""

    title: Optional[str] = None
    description: Optional[str] = None
    price: Any = None
    deposit: Optional[str] = None
    district: Optional[str] = None
    address: Optional[str] = None
    near_mrt: Optional[str] = None
    area: Any = None
    room_type: Optional[str] = None
    floor: Optional[str] = None
    total_floors: Optional[str] = None
    features: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    url: Optional[str] = None
    source_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawRecord":
        """Build a record from the camelCase keys the extraction service returns."""
        return cls(
            title=_optional_text(data.get("title")),
            description=_optional_text(data.get("description")),
            price=data.get("price"),
            deposit=_optional_text(data.get("deposit")),
            district=_optional_text(data.get("district")),
            address=_optional_text(data.get("address")),
            near_mrt=_optional_text(data.get("nearMRT", data.get("near_mrt"))),
            area=data.get("area"),
            room_type=_optional_text(data.get("roomType", data.get("room_type"))),
            floor=_optional_text(data.get("floor")),
            total_floors=_optional_text(data.get("totalFloors", data.get("total_floors"))),
            features=_text_list(data.get("features")),
            images=_text_list(data.get("images")),
            contact_name=_optional_text(data.get("contactName", data.get("contact_name"))),
            contact_phone=_optional_text(data.get("contactPhone", data.get("contact_phone"))),
            url=_optional_text(data.get("url")),
            source_id=_optional_text(data.get("sourceId", data.get("source_id"))),
        )


@dataclass
class FeatureTag:
    """Free-text listing feature with its derived category."""

    name: str
    category: str

    def to_dict(self) -> Dict[str, str]:
        return {"feature": self.name, "category": self.category}


@dataclass
class PriceHistoryEntry:
    """One observed price of a listing."""

    price: int
    recorded_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"price": self.price, "recordedAt": self.recorded_at.isoformat()}


@dataclass
class Listing:
    """Canonical rental listing, keyed by (source, source_id)."""

    source: str
    source_id: str
    title: str
    price: int
    url: str = ""
    description: Optional[str] = None
    deposit: Optional[str] = None
    district: Optional[str] = None
    address: Optional[str] = None
    near_mrt: Optional[str] = None
    area: Optional[float] = None
    room_type: Optional[str] = None
    floor: Optional[str] = None
    total_floors: Optional[str] = None
    has_parking: bool = False
    has_pet: bool = False
    has_cooking: bool = False
    has_elevator: bool = False
    has_balcony: bool = False
    has_washer: bool = False
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    images: List[str] = field(default_factory=list)
    features: List[FeatureTag] = field(default_factory=list)
    id: Optional[int] = None
    view_count: int = 0
    is_active: bool = True
    last_seen_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    price_history: List[PriceHistoryEntry] = field(default_factory=list)

    @property
    def key(self) -> tuple:
        return (self.source, self.source_id)

    def validate(self) -> bool:
        """Validate the listing data."""
        if not self.source or not self.source.strip():
            raise ValueError("Listing source cannot be empty")

        if not self.source_id or not str(self.source_id).strip():
            raise ValueError("Listing source id cannot be empty")

        if not self.title or not self.title.strip():
            raise ValueError("Listing title cannot be empty")

        if not isinstance(self.price, int) or isinstance(self.price, bool):
            raise ValueError("Listing price must be an integer")

        if self.price < 0:
            raise ValueError("Listing price cannot be negative")

        if self.area is not None and self.area < 0:
            raise ValueError("Listing area cannot be negative")

        if self.url:
            parsed_url = urlparse(self.url)
            if not parsed_url.scheme or not parsed_url.netloc:
                raise ValueError(f"Invalid URL format: {self.url}")

        if len(self.title) > 500:
            raise ValueError("Listing title too long (max 500 characters)")

        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialise with the externally visible field names."""

        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "source": self.source,
            "sourceId": self.source_id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "deposit": self.deposit,
            "district": self.district,
            "address": self.address,
            "nearMRT": self.near_mrt,
            "area": self.area,
            "roomType": self.room_type,
            "floor": self.floor,
            "totalFloors": self.total_floors,
            "hasParking": self.has_parking,
            "hasPet": self.has_pet,
            "hasCooking": self.has_cooking,
            "hasElevator": self.has_elevator,
            "hasBalcony": self.has_balcony,
            "hasWasher": self.has_washer,
            "contactName": self.contact_name,
            "contactPhone": self.contact_phone,
            "url": self.url,
            "images": list(self.images),
            "features": [feature.to_dict() for feature in self.features],
            "viewCount": self.view_count,
            "isActive": self.is_active,
            "lastSeenAt": iso(self.last_seen_at),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
            "priceHistory": [entry.to_dict() for entry in self.price_history],
        }


@dataclass
class UpsertResult:
    """Outcome of merging one listing into the store."""

    listing_id: int
    is_new: bool
    price_changed: bool
    old_price: Optional[int] = None
    new_price: Optional[int] = None
