"""
Notification models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

PRICE_CHANGE = "PRICE_CHANGE"


@dataclass
class Notification:
    """Persisted message for one user."""

    user_id: str
    type: str
    title: str
    content: str
    data: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    is_read: bool = False
    created_at: Optional[datetime] = None

    def validate(self) -> bool:
        """Validate notification data."""
        if not self.user_id:
            raise ValueError("Notification user id cannot be empty")

        if not self.type:
            raise ValueError("Notification type cannot be empty")

        if not self.title or not self.title.strip():
            raise ValueError("Notification title cannot be empty")

        if len(self.title) > 200:
            raise ValueError("Notification title too long (max 200 characters)")

        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "title": self.title,
            "content": self.content,
            "data": dict(self.data),
            "isRead": self.is_read,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class FanOutResult:
    """Result of fanning a price change out to favoriting users."""

    recipients: int = 0
    delivered: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0
