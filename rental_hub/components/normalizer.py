"""
Listing normalisation.

Pure functions turning the loosely typed records extracted from source
pages into canonical listings. Nothing here performs I/O.
"""

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.listing import AMENITY_FLAGS, FeatureTag, Listing, RawRecord

logger = logging.getLogger(__name__)

DIGIT_RUN = re.compile(r"\d+")
DECIMAL_NUMBER = re.compile(r"\d+(?:\.\d+)?")
# Optional postal code and bare city name ("106台北大安區") precede the district.
DISTRICT_PATTERN = re.compile(
    r"(?:^|[市縣])\s*\d*\s*(?:[台臺]北|新北|桃園|基隆|新竹|[台臺]中|[台臺]南|高雄)?\s*([^\s\d市縣區]{1,4}區)"
)
DETAIL_ID_PATTERN = re.compile(r"(\d+)\.html")

# Longer patterns first so "2房1廳" is not cut down to "2房".
ROOM_TYPE_PATTERN = re.compile(r"(分租套房|獨立套房|整層住家|\d+房\d+廳|\d+房|套房|雅房|開放式)")

AMENITY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "has_parking": ("車位", "停車"),
    "has_pet": ("寵物",),
    "has_cooking": ("開伙", "廚房"),
    "has_elevator": ("電梯",),
    "has_balcony": ("陽台", "露台"),
    "has_washer": ("洗衣機",),
}

FEATURE_CATEGORIES: List[Tuple[str, Tuple[str, ...]]] = [
    ("交通", ("捷運", "公車", "交通")),
    ("設施", ("電梯", "車位", "陽台")),
    ("生活機能", ("學校", "市場", "公園")),
    ("規定", ("寵物", "開伙", "管理")),
]
DEFAULT_FEATURE_CATEGORY = "其他"


def parse_price(value: Any) -> int:
    """
    Monthly rent as an integer.

    Numbers pass through. Strings have thousands separators stripped and the
    first run of digits is used; anything else yields 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        return max(int(value), 0) if math.isfinite(value) else 0
    match = DIGIT_RUN.search(str(value).replace(",", ""))
    return int(match.group()) if match else 0


def parse_area(value: Any) -> Optional[float]:
    """Floor area in ping, or None when no number is present."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    match = DECIMAL_NUMBER.search(str(value).replace(",", ""))
    return float(match.group()) if match else None


def derive_district(district: Optional[str], address: Optional[str]) -> Optional[str]:
    """Explicit district, else the administrative district named in the address."""
    if district and district.strip():
        return district.strip()
    if not address:
        return None
    match = DISTRICT_PATTERN.search(address)
    return match.group(1) if match else None


def derive_room_type(room_type: Optional[str], title: Optional[str]) -> Optional[str]:
    if room_type and room_type.strip():
        return room_type.strip()
    if not title:
        return None
    match = ROOM_TYPE_PATTERN.search(title)
    return match.group(1) if match else None


def derive_amenities(features: Iterable[str]) -> Dict[str, bool]:
    """One flag per amenity, true when any feature mentions one of its keywords."""
    features = list(features)
    return {
        flag: any(keyword in feature for feature in features for keyword in AMENITY_KEYWORDS[flag])
        for flag in AMENITY_FLAGS
    }


def categorize_feature(feature: str) -> str:
    for category, keywords in FEATURE_CATEGORIES:
        if any(keyword in feature for keyword in keywords):
            return category
    return DEFAULT_FEATURE_CATEGORY


def ensure_full_url(url: Optional[str], origin: str) -> str:
    """Resolve protocol-relative and root-relative URLs against the source origin."""
    if not url:
        return ""
    url = url.strip()
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith("/"):
        return f"{origin.rstrip('/')}{url}"
    return url


def extract_id_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    match = DETAIL_ID_PATTERN.search(url)
    return match.group(1) if match else None


def normalize_record(raw: RawRecord, source: str, origin: str) -> Listing:
    """
    Build the canonical listing for one extracted record.

    The result is not validated here; records without a derivable source id
    fail Listing.validate() and are skipped by the caller.
    """
    url = ensure_full_url(raw.url, origin)
    features = [feature for feature in raw.features if feature and feature.strip()]
    source_id = raw.source_id or extract_id_from_url(url) or ""

    listing = Listing(
        source=source,
        source_id=str(source_id).strip(),
        title=(raw.title or "").strip(),
        price=parse_price(raw.price),
        url=url,
        description=raw.description,
        deposit=raw.deposit,
        district=derive_district(raw.district, raw.address),
        address=raw.address,
        near_mrt=raw.near_mrt,
        area=parse_area(raw.area),
        room_type=derive_room_type(raw.room_type, raw.title),
        floor=raw.floor,
        total_floors=raw.total_floors,
        contact_name=raw.contact_name,
        contact_phone=raw.contact_phone,
        images=[ensure_full_url(image, origin) for image in raw.images if image],
        features=[FeatureTag(name=feature, category=categorize_feature(feature)) for feature in features],
        **derive_amenities(features),
    )

    if not listing.source_id:
        logger.debug(f"No source id derivable for record {raw.title!r} from {source}")

    return listing
