"""
Search service.

Entry point for structured searches, natural-language searches,
autocomplete suggestions and listing lookups.
"""

from typing import Any, Dict, List, Optional, Union

from ..interfaces import IFilterEngine, IQueryTranslator
from ..models.criteria import Criteria
from ..models.search import Suggestion
from ..utils.error_handling import (
    ErrorCategory,
    ErrorSeverity,
    TranslationFailure,
    get_error_tracker,
)
from ..utils.logging import get_logger
from .listing_store import ListingStore

SUGGESTION_TYPES = (
    ("district", "district"),
    ("near_mrt", "mrt"),
    ("room_type", "roomType"),
)


class SearchService:
    """Search surface over the filter engine and query translator."""

    def __init__(
        self,
        filter_engine: IFilterEngine,
        translator: IQueryTranslator,
        store: ListingStore,
        default_limit: int = 20,
        suggestion_limit: int = 5,
    ):
        self.filter_engine = filter_engine
        self.translator = translator
        self.store = store
        self.default_limit = default_limit
        self.suggestion_limit = suggestion_limit
        self.logger = get_logger("search.service")

    async def search(
        self,
        criteria: Union[Criteria, Dict[str, Any], None] = None,
        page: int = 1,
        limit: Optional[int] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        """Structured search returning properties, pagination and the criteria used."""
        if not isinstance(criteria, Criteria):
            criteria = Criteria.from_dict(criteria)
        criteria.validate()

        result = self.filter_engine.execute(
            criteria,
            page=page,
            limit=limit or self.default_limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        self.logger.info(
            "Structured search",
            {"criteria": criteria.to_dict(), "total": result.total, "page": page},
        )
        return {**result.to_dict(), "searchCriteria": criteria.to_dict()}

    async def natural_language_search(
        self,
        text: str,
        page: int = 1,
        limit: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Translate free text, run it, and log the request.

        The query log row is written before translation so failed
        translations are recorded too.

        Raises:
            ValueError: If text is empty.
            TranslationFailure: If the text could not be translated.
        """
        if not text or not text.strip():
            raise ValueError("Search query cannot be empty")

        log_id = self.store.create_search_log(text, user_id=user_id)

        try:
            criteria = await self.translator.translate(text)
        except TranslationFailure as e:
            self.store.update_search_log(log_id, error_message=str(e))
            get_error_tracker().record_error(
                component="search.service",
                category=ErrorCategory.LLM_TRANSLATION,
                severity=ErrorSeverity.MEDIUM,
                message=f"Query translation failed: {e}",
                exception=e,
                context={"query": text, "log_id": log_id},
            )
            raise

        self.store.update_search_log(log_id, criteria=criteria)

        result = self.filter_engine.execute(criteria, page=page, limit=limit or self.default_limit)
        self.store.update_search_log(log_id, result_count=result.total)

        self.logger.info(
            "Natural language search",
            {"query": text, "log_id": log_id, "total": result.total},
        )
        return {
            "query": text,
            "parsedCriteria": criteria.to_dict(),
            **result.to_dict(),
        }

    async def suggest(self, prefix: str) -> List[Dict[str, str]]:
        """Distinct district, MRT and room type values containing the prefix."""
        if not prefix or len(prefix.strip()) < 2:
            return []

        needle = prefix.strip()
        suggestions: List[Suggestion] = []
        for column, suggestion_type in SUGGESTION_TYPES:
            for value in self.store.distinct_values(column, needle, self.suggestion_limit):
                suggestions.append(Suggestion(type=suggestion_type, value=value))

        return [suggestion.to_dict() for suggestion in suggestions]

    async def get_listing(self, listing_id: int, history_limit: int = 10) -> Dict[str, Any]:
        """
        One listing with its recent price history; counts as a view.

        Raises:
            NotFound: If the listing does not exist.
        """
        listing = self.store.get_listing(listing_id, history_limit=history_limit)
        self.store.increment_view_counts([listing_id])
        return listing.to_dict()

    async def get_listing_stats(self) -> Dict[str, Any]:
        return self.store.listing_stats().to_dict()
