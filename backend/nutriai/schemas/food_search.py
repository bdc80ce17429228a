"""Food search request and response schemas."""
from typing import Any, List, Optional

from pydantic import Field, field_validator
from pydantic_core import PydanticCustomError

from nutriai.schemas.base import CamelModel
from nutriai.schemas.nutrition import FoodItem

MAX_QUERY_LENGTH = 100
MAX_LIMIT = 50


class FoodSearchRequest(CamelModel):
    """Request payload for the food-search function."""
    query: Optional[str] = Field(default=None, validate_default=True)
    limit: int = 20
    page: int = 1
    grouped: bool = True  # False returns the flat {foods, hasMore, total, page} shape

    @field_validator("query", mode="before")
    @classmethod
    def check_query(cls, value: Any) -> str:
        if not value or not isinstance(value, str):
            raise PydanticCustomError(
                "invalid_query",
                "Please provide a search term",
                {"title": "Invalid search query"},
            )
        if len(value) > MAX_QUERY_LENGTH:
            raise PydanticCustomError(
                "invalid_query",
                "Search term must be between 1 and 100 characters",
                {"title": "Invalid search query"},
            )
        return value

    @field_validator("limit")
    @classmethod
    def check_limit(cls, value: int) -> int:
        if value < 1 or value > MAX_LIMIT:
            raise PydanticCustomError(
                "invalid_limit",
                "Limit must be between 1 and 50",
                {"title": "Invalid limit parameter"},
            )
        return value

    @field_validator("page")
    @classmethod
    def check_page(cls, value: int) -> int:
        if value < 1:
            raise PydanticCustomError(
                "invalid_page",
                "Page number must be 1 or greater",
                {"title": "Invalid page parameter"},
            )
        return value


class FoodSearchItem(FoodItem):
    """A single food in search results, nutrients per serving."""
    id: str  # FDC ID as string
    data_type: str


class FoodResultGroup(CamelModel):
    """Group of results; empty ``items`` means the group loads on demand."""
    title: str
    items: List[FoodSearchItem] = Field(default_factory=list)
    max_displayed: Optional[int] = None


class SearchSuggestion(CamelModel):
    """Alternative query offered alongside results."""
    display_text: str
    query: str
    reasoning: Optional[str] = None


class FoodSearchMeta(CamelModel):
    query: str
    total_results: int
    current_page: int
    processing_time: Optional[int] = None  # ms
    total_available: Optional[int] = None
    initial_displayed: Optional[int] = None


class GroupedFoodSearchResponse(CamelModel):
    """Progressive disclosure response."""
    result_groups: List[FoodResultGroup]
    next_page_token: Optional[str] = None
    total_remaining: int
    suggested_queries: List[SearchSuggestion]
    all_foods: List[FoodSearchItem]
    meta: FoodSearchMeta


class FlatFoodSearchResponse(CamelModel):
    """Plain paginated list response."""
    foods: List[FoodSearchItem]
    has_more: bool
    total: int
    page: int
