"""
Unit tests for data models.
"""

from datetime import datetime

import pytest

from conftest import make_listing
from rental_hub.models.crawl import (
    CrawlOptions,
    CrawlRun,
    CrawlStatus,
    FailureKind,
    PageResult,
    RunLogFilter,
    RunSummary,
    SourceRunResult,
)
from rental_hub.models.criteria import Criteria
from rental_hub.models.listing import PriceHistoryEntry, RawRecord
from rental_hub.models.notification import Notification
from rental_hub.models.search import SearchResult


class TestRawRecord:
    """Test RawRecord model."""

    def test_from_camel_case_dict(self):
        record = RawRecord.from_dict(
            {
                "title": "  信義區 兩房  ",
                "price": "25,000",
                "nearMRT": "市政府",
                "roomType": "2房1廳",
                "features": ["有電梯", "", None, " 可養寵物 "],
                "images": "//img.example.tw/1.jpg",
                "sourceId": 12345,
            }
        )

        assert record.title == "信義區 兩房"
        assert record.price == "25,000"
        assert record.near_mrt == "市政府"
        assert record.room_type == "2房1廳"
        assert record.features == ["有電梯", "可養寵物"]
        assert record.images == ["//img.example.tw/1.jpg"]
        assert record.source_id == "12345"

    def test_blank_strings_become_none(self):
        record = RawRecord.from_dict({"title": "   ", "address": ""})

        assert record.title is None
        assert record.address is None
        assert record.features == []

    def test_scalar_list_fields_become_empty(self):
        record = RawRecord.from_dict({"title": "套房", "features": 5, "images": {"url": "a.jpg"}})

        assert record.features == []
        assert record.images == []


class TestListing:
    """Test Listing model."""

    def test_valid_listing(self):
        assert make_listing().validate() is True

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"source": ""}, "source cannot be empty"),
            ({"source_id": " "}, "source id"),
            ({"title": ""}, "title cannot be empty"),
            ({"price": "18000"}, "integer"),
            ({"price": True}, "integer"),
            ({"price": -1}, "negative"),
            ({"area": -3.0}, "area"),
            ({"url": "not a url"}, "Invalid URL"),
            ({"title": "套" * 501}, "too long"),
        ],
    )
    def test_invalid_listing(self, overrides, message):
        with pytest.raises(ValueError, match=message):
            make_listing(**overrides).validate()

    def test_empty_url_allowed(self):
        assert make_listing(url="").validate() is True

    def test_key(self):
        assert make_listing("42", source="OTHER").key == ("OTHER", "42")

    def test_to_dict_field_names(self):
        listing = make_listing(
            price_history=[PriceHistoryEntry(price=18000, recorded_at=datetime(2024, 3, 1))]
        )

        data = listing.to_dict()

        assert data["sourceId"] == "1001"
        assert data["nearMRT"] == "忠孝復興"
        assert data["hasElevator"] is True
        assert data["features"] == [{"feature": "近捷運", "category": "交通"}]
        assert data["priceHistory"] == [{"price": 18000, "recordedAt": "2024-03-01T00:00:00"}]
        assert data["createdAt"] is None


class TestCriteria:
    """Test Criteria model."""

    def test_from_dict_accepts_both_spellings(self):
        assert Criteria.from_dict({"minPrice": 1000}) == Criteria.from_dict({"min_price": 1000})

    def test_numeric_strings_parsed(self):
        criteria = Criteria.from_dict({"maxPrice": "20,000", "minArea": "8.5"})

        assert criteria.max_price == 20000
        assert criteria.min_area == 8.5

    @pytest.mark.parametrize("value", ["兩萬", "", True, [1], {"v": 1}])
    def test_unusable_numbers_become_none(self, value):
        assert Criteria.from_dict({"maxPrice": value}).max_price is None

    @pytest.mark.parametrize("value,expected", [(True, True), ("yes", True), ("TRUE", True), (False, None), ("no", None), (1, None)])
    def test_flag_coercion(self, value, expected):
        assert Criteria.from_dict({"hasWasher": value}).has_washer is expected

    def test_to_dict_lists_every_field(self):
        data = Criteria(district="大安區").to_dict()

        assert data["district"] == "大安區"
        assert len(data) == 13
        assert all(value is None for key, value in data.items() if key != "district")

    def test_is_empty(self):
        assert Criteria().is_empty() is True
        assert Criteria(has_pet=True).is_empty() is False

    def test_validate_rejects_negative_bounds(self):
        with pytest.raises(ValueError, match="min_area"):
            Criteria(min_area=-1).validate()

    def test_validate_rejects_false_flags(self):
        with pytest.raises(ValueError, match="has_pet"):
            Criteria(has_pet=False).validate()


class TestCrawlModels:
    """Test crawl run models."""

    def test_terminal_statuses(self):
        assert CrawlStatus.RUNNING.is_terminal is False
        assert all(status.is_terminal for status in CrawlStatus if status is not CrawlStatus.RUNNING)

    def test_options_from_dict(self):
        options = CrawlOptions.from_dict({"maxPages": "4", "region": 1, "kind": None, "filters": {"section": 5}})

        assert options.max_pages == 4
        assert options.filters == {"region": "1", "section": "5"}

    def test_options_defaults(self):
        assert CrawlOptions.from_dict(None) == CrawlOptions(max_pages=5, filters={})

    @pytest.mark.parametrize("max_pages", [0, -2])
    def test_options_validation(self, max_pages):
        with pytest.raises(ValueError):
            CrawlOptions(max_pages=max_pages).validate()

    def test_page_result_failure_kinds(self):
        first = PageResult(page_number=1, failure=FailureKind.NAVIGATION, error_message="timeout")
        later = PageResult(page_number=3, failure=FailureKind.EXTRACTION)
        ok = PageResult(page_number=1, has_next=True)

        assert first.failed and first.is_fatal
        assert later.failed and not later.is_fatal
        assert not ok.failed and not ok.is_fatal

    def test_crawl_run_to_dict(self):
        run = CrawlRun(
            id=7,
            source="RENTAL591",
            status=CrawlStatus.COMPLETED,
            started_at=datetime(2024, 3, 1, 9, 0),
            completed_at=datetime(2024, 3, 1, 9, 5),
            total_found=30,
            new_count=4,
            updated_count=26,
        )

        data = run.to_dict()

        assert data["status"] == "COMPLETED"
        assert data["completedAt"] == "2024-03-01T09:05:00"
        assert (data["newProperties"], data["updatedProperties"]) == (4, 26)

    def test_run_summary_aggregates(self):
        summary = RunSummary()
        summary.add(SourceRunResult(source="A", status=CrawlStatus.COMPLETED, total_found=10, new_count=3, updated_count=7))
        summary.add(SourceRunResult(source="B", status=CrawlStatus.FAILED, error="boom"))
        summary.add(SourceRunResult(source="C", status=None, skipped=True))

        assert (summary.total_found, summary.new_properties, summary.updated_properties) == (10, 3, 7)
        assert summary.errors == [{"source": "B", "error": "boom"}]
        assert [run["status"] for run in summary.to_dict()["runs"]] == ["COMPLETED", "FAILED", "SKIPPED"]

    def test_run_log_filter_from_dict(self):
        run_filter = RunLogFilter.from_dict({"source": "RENTAL591", "status": "completed", "startDate": "2024-03-01"})

        assert run_filter.source == "RENTAL591"
        assert run_filter.status is CrawlStatus.COMPLETED
        assert run_filter.start_date == datetime(2024, 3, 1)
        assert run_filter.end_date is None

    def test_run_log_filter_rejects_bad_values(self):
        with pytest.raises(ValueError):
            RunLogFilter.from_dict({"startDate": "not a date at all"})
        with pytest.raises(ValueError):
            RunLogFilter.from_dict({"status": "sleeping"})


class TestSearchModels:
    """Test search and notification models."""

    def test_search_result_pages(self):
        result = SearchResult(items=[], total=41, page=2, limit=20)

        assert result.pages == 3
        assert result.to_dict() == {"properties": [], "pagination": {"page": 2, "limit": 20, "total": 41, "pages": 3}}

    def test_empty_search_result(self):
        assert SearchResult(items=[], total=0, page=1, limit=20).pages == 0

    def test_notification_validation(self):
        notification = Notification(user_id="u1", type="PRICE_CHANGE", title="物件價格變動通知", content="...")

        assert notification.validate() is True
        with pytest.raises(ValueError):
            Notification(user_id="", type="PRICE_CHANGE", title="t", content="").validate()
        with pytest.raises(ValueError, match="too long"):
            Notification(user_id="u1", type="PRICE_CHANGE", title="x" * 201, content="").validate()
