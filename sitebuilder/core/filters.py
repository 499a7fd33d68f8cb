"""Input filter allow-lists contributed by modules."""

from typing import Any, Dict, List, Mapping, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

FILTER_CATEGORIES = (
    "allowed_output",
    "allowed_get",
    "allowed_cookie",
    "allowed_post",
    "allowed_server",
    "allowed_pages",
)


class FilterSet(BaseModel):
    """Allow-lists for request inputs and output channels."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    allowed_output: List[str] = Field(default_factory=list, description="Output modules allowed to render")
    allowed_get: List[str] = Field(default_factory=list, description="Allowed GET parameters")
    allowed_cookie: List[str] = Field(default_factory=list, description="Allowed cookies")
    allowed_post: List[str] = Field(default_factory=list, description="Allowed POST parameters")
    allowed_server: List[str] = Field(default_factory=list, description="Allowed server variables")
    allowed_pages: List[str] = Field(default_factory=list, description="Pages the site will serve")

    def merge(self, other: "FilterSet") -> "FilterSet":
        """
        Combine two filter sets.

        Each category of the result is this set's entries followed by the
        other set's entries. Nothing is reordered or deduplicated.

        Args:
            other: Filter set to append

        Returns:
            New FilterSet
        """
        return FilterSet(**{
            category: list(getattr(self, category)) + list(getattr(other, category))
            for category in FILTER_CATEGORIES
        })

    def to_dict(self) -> Dict[str, List[str]]:
        """All six categories as plain lists, in fixed order."""
        return {category: list(getattr(self, category)) for category in FILTER_CATEGORIES}


def merge_filters(existing: FilterSet,
                  new: Optional[Union[FilterSet, Mapping[str, Any]]]) -> FilterSet:
    """
    Merge a module's partial filter mapping into the running set.

    Missing categories count as empty, unknown keys are ignored.
    Raises pydantic.ValidationError if a category is not a list of strings.
    """
    if new is None:
        return existing
    if not isinstance(new, FilterSet):
        new = FilterSet.model_validate(dict(new))
    return existing.merge(new)
