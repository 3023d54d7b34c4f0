"""
Price-change notification dispatching.

Creates one persisted notification for every user who favorited a listing
whose price changed. Delivery is at-most-once per detected change: a failed
recipient is counted and skipped, never retried.
"""

from datetime import datetime
from typing import Callable

from ..interfaces import IFavoriteLookup, INotificationSink
from ..models.listing import Listing
from ..models.notification import PRICE_CHANGE, FanOutResult, Notification
from ..utils.error_handling import ErrorCategory, ErrorSeverity, get_error_tracker
from ..utils.logging import get_logger

PRICE_CHANGE_TITLE = "物件價格變動通知"


def format_price_change(listing: Listing, old_price: int, new_price: int) -> str:
    """Human-readable notification body."""
    direction = "調降" if new_price < old_price else "調漲"
    return (
        f"您收藏的物件「{listing.title}」價格{direction}，"
        f"從 NT${old_price:,} 變更為 NT${new_price:,}"
    )


class NotificationDispatcher:
    """Fan-out of price changes to favoriting users."""

    def __init__(
        self,
        favorites: IFavoriteLookup,
        sink: INotificationSink,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.favorites = favorites
        self.sink = sink
        self.clock = clock
        self.logger = get_logger("notification.dispatcher")

    async def notify_price_change(self, listing: Listing, old_price: int, new_price: int) -> FanOutResult:
        """
        Notify every user who favorited the listing.

        Args:
            listing: Listing whose price changed (must carry its id)
            old_price: Previous price
            new_price: Current price

        Returns:
            FanOutResult with per-recipient delivery counts
        """
        if listing.id is None:
            raise ValueError("Listing id is required to look up favorites")

        user_ids = self.favorites.favorite_user_ids(listing.id)
        result = FanOutResult(recipients=len(user_ids))
        if not user_ids:
            self.logger.debug("No favoriting users for listing", {"listing_id": listing.id})
            return result

        content = format_price_change(listing, old_price, new_price)
        payload = {"listingId": listing.id, "oldPrice": old_price, "newPrice": new_price}

        for user_id in user_ids:
            try:
                self.sink.create_notification(
                    Notification(
                        user_id=user_id,
                        type=PRICE_CHANGE,
                        title=PRICE_CHANGE_TITLE,
                        content=content,
                        data=dict(payload),
                        created_at=self.clock(),
                    )
                )
                result.delivered += 1
            except Exception as e:
                result.failed += 1
                result.errors.append(f"{user_id}: {e}")
                get_error_tracker().record_error(
                    component="notification.dispatcher",
                    category=ErrorCategory.NOTIFICATION,
                    severity=ErrorSeverity.LOW,
                    message=f"Failed to notify user {user_id} about listing {listing.id}: {e}",
                    exception=e,
                    context={"listing_id": listing.id, "user_id": user_id},
                )

        self.logger.info(
            "Price change fan-out finished",
            {
                "listing_id": listing.id,
                "recipients": result.recipients,
                "delivered": result.delivered,
                "failed": result.failed,
            },
        )
        return result
