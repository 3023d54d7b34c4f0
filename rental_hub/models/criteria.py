"""
Structured search criteria.
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

# Wire name -> attribute name, in the order the translator prompt lists them.
CRITERIA_FIELDS = {
    "district": "district",
    "minPrice": "min_price",
    "maxPrice": "max_price",
    "minArea": "min_area",
    "maxArea": "max_area",
    "roomType": "room_type",
    "nearMRT": "near_mrt",
    "hasParking": "has_parking",
    "hasPet": "has_pet",
    "hasCooking": "has_cooking",
    "hasElevator": "has_elevator",
    "hasBalcony": "has_balcony",
    "hasWasher": "has_washer",
}

TEXT_FIELDS = ("district", "room_type", "near_mrt")
NUMERIC_FIELDS = ("min_price", "max_price", "min_area", "max_area")
FLAG_FIELDS = (
    "has_parking",
    "has_pet",
    "has_cooking",
    "has_elevator",
    "has_balcony",
    "has_washer",
)

_TRUE_STRINGS = {"true", "1", "yes", "on"}


def _coerce_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _coerce_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return int(number) if number.is_integer() else number
    return None


def _coerce_flag(value: Any) -> Optional[bool]:
    """Only an affirmative value becomes a constraint; everything else is absent."""
    if value is True:
        return True
    if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS:
        return True
    return None


@dataclass
class Criteria:
    """Bounded filter over listings. Absent fields impose no constraint."""

    district: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_area: Optional[float] = None
    max_area: Optional[float] = None
    room_type: Optional[str] = None
    near_mrt: Optional[str] = None
    has_parking: Optional[bool] = None
    has_pet: Optional[bool] = None
    has_cooking: Optional[bool] = None
    has_elevator: Optional[bool] = None
    has_balcony: Optional[bool] = None
    has_washer: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Criteria":
        """
        Build criteria from camelCase or snake_case keys.

        Unknown keys are ignored, and values that do not fit the field type
        are treated as unknown rather than guessed.
        """
        data = data or {}
        values: Dict[str, Any] = {}
        for wire_name, attribute in CRITERIA_FIELDS.items():
            raw = data.get(wire_name, data.get(attribute))
            if attribute in TEXT_FIELDS:
                values[attribute] = _coerce_text(raw)
            elif attribute in NUMERIC_FIELDS:
                values[attribute] = _coerce_number(raw)
            else:
                values[attribute] = _coerce_flag(raw)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Every field, with None for unknown ones."""
        return {wire_name: getattr(self, attribute) for wire_name, attribute in CRITERIA_FIELDS.items()}

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def validate(self) -> bool:
        """Validate criteria ranges."""
        for attribute in NUMERIC_FIELDS:
            value = getattr(self, attribute)
            if value is not None and value < 0:
                raise ValueError(f"{attribute} cannot be negative")

        for attribute in FLAG_FIELDS:
            if getattr(self, attribute) not in (True, None):
                raise ValueError(f"{attribute} must be True or None")

        return True
