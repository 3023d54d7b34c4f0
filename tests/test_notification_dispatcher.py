"""
Tests for price-change notification fan-out.
"""

from unittest.mock import Mock

import pytest

from conftest import make_listing
from rental_hub.components.notification_dispatcher import (
    PRICE_CHANGE_TITLE,
    NotificationDispatcher,
    format_price_change,
)
from rental_hub.models.notification import PRICE_CHANGE


@pytest.fixture
def stored_listing(listing_store, clock):
    return listing_store.insert_listing(make_listing("1001", 18000), clock.now)


class TestFormatPriceChange:
    """Test message formatting."""

    def test_price_drop(self):
        text = format_price_change(make_listing(title="大安區套房"), 18000, 16500)

        assert "大安區套房" in text
        assert "調降" in text
        assert "NT$18,000" in text
        assert "NT$16,500" in text

    def test_price_rise(self):
        assert "調漲" in format_price_change(make_listing(), 16500, 18000)


class TestNotificationDispatcher:
    """Test NotificationDispatcher functionality."""

    @pytest.mark.asyncio
    async def test_notifies_every_favoriting_user(self, listing_store, stored_listing, clock):
        listing_store.add_favorite("user-a", stored_listing.id)
        listing_store.add_favorite("user-b", stored_listing.id)
        dispatcher = NotificationDispatcher(listing_store, listing_store, clock=clock)

        result = await dispatcher.notify_price_change(stored_listing, 18000, 16500)

        assert result.recipients == 2
        assert result.delivered == 2
        assert result.success is True

        for user_id in ("user-a", "user-b"):
            notifications = listing_store.list_notifications(user_id)
            assert len(notifications) == 1
            notification = notifications[0]
            assert notification.type == PRICE_CHANGE
            assert notification.title == PRICE_CHANGE_TITLE
            assert notification.data == {"listingId": stored_listing.id, "oldPrice": 18000, "newPrice": 16500}
            assert notification.is_read is False
            assert notification.created_at == clock.now

    @pytest.mark.asyncio
    async def test_no_favorites_no_notifications(self, listing_store, stored_listing):
        dispatcher = NotificationDispatcher(listing_store, listing_store)

        result = await dispatcher.notify_price_change(stored_listing, 18000, 16500)

        assert result.recipients == 0
        assert result.delivered == 0

    @pytest.mark.asyncio
    async def test_one_failing_recipient_does_not_block_others(self, stored_listing):
        favorites = Mock()
        favorites.favorite_user_ids.return_value = ["user-a", "user-b", "user-c"]
        sink = Mock()
        sink.create_notification.side_effect = [None, RuntimeError("disk full"), None]
        dispatcher = NotificationDispatcher(favorites, sink)

        result = await dispatcher.notify_price_change(stored_listing, 18000, 16500)

        assert sink.create_notification.call_count == 3
        assert result.delivered == 2
        assert result.failed == 1
        assert result.success is False
        assert "user-b" in result.errors[0]

    @pytest.mark.asyncio
    async def test_listing_without_id_rejected(self, listing_store):
        dispatcher = NotificationDispatcher(listing_store, listing_store)

        with pytest.raises(ValueError):
            await dispatcher.notify_price_change(make_listing(), 18000, 16500)
