"""MLS configuration document and the resolved rule set."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from src.models.listing import SOLD_STATUSES


# Always excluded at the property-type level, independent of configuration.
DEFAULT_EXCLUDED_PROPERTY_TYPES = frozenset({"Commercial Sale"})

# Excluded from the public search view unless the sold view is requested.
DEFAULT_EXCLUDED_STATUSES = SOLD_STATUSES


class SearchView(str, Enum):
    """Call-site view that decides which default exclusions apply."""
    PUBLIC = "public"
    SOLD = "sold"


class PropertyTypeToggle(BaseModel):
    propertyType: str
    excluded: bool = False


class PropertySubTypeToggle(BaseModel):
    propertySubType: str
    excluded: bool = False


class CityToggle(BaseModel):
    city: str
    allowed: bool = False


class StatusToggle(BaseModel):
    status: str
    excluded: bool = False


class MLSConfiguration(BaseModel):
    """CMS-authored toggle lists, as stored."""
    excludedPropertyTypes: Optional[list[PropertyTypeToggle]] = None
    excludedPropertySubTypes: Optional[list[PropertySubTypeToggle]] = None
    allowedCities: Optional[list[CityToggle]] = None
    excludedStatuses: Optional[list[StatusToggle]] = None


class RuleSet(BaseModel):
    """Concrete predicate sets resolved from the MLS configuration.

    An empty set means "no restriction of this kind".
    """
    model_config = ConfigDict(frozen=True)

    excluded_property_types: frozenset[str] = Field(default_factory=frozenset)
    excluded_property_sub_types: frozenset[str] = Field(default_factory=frozenset)
    allowed_cities: frozenset[str] = Field(default_factory=frozenset)
    excluded_statuses: frozenset[str] = Field(default_factory=frozenset)

    @classmethod
    def empty(cls) -> "RuleSet":
        return cls()

    @classmethod
    def from_configuration(cls, config: Optional[MLSConfiguration]) -> "RuleSet":
        """Keep only the toggled-on entries of each list."""
        if config is None:
            return cls.empty()
        return cls(
            excluded_property_types=frozenset(
                item.propertyType for item in config.excludedPropertyTypes or [] if item.excluded
            ),
            excluded_property_sub_types=frozenset(
                item.propertySubType for item in config.excludedPropertySubTypes or [] if item.excluded
            ),
            allowed_cities=frozenset(
                item.city for item in config.allowedCities or [] if item.allowed
            ),
            excluded_statuses=frozenset(
                item.status for item in config.excludedStatuses or [] if item.excluded
            ),
        )

    @property
    def is_empty(self) -> bool:
        return not (
            self.excluded_property_types
            or self.excluded_property_sub_types
            or self.allowed_cities
            or self.excluded_statuses
        )

    def with_defaults(self, view: SearchView = SearchView.PUBLIC) -> "RuleSet":
        """Layer the unconditional default exclusions on top of the configured rules."""
        excluded_statuses = self.excluded_statuses
        if view == SearchView.PUBLIC:
            excluded_statuses = excluded_statuses | DEFAULT_EXCLUDED_STATUSES
        return self.model_copy(update={
            "excluded_property_types": self.excluded_property_types | DEFAULT_EXCLUDED_PROPERTY_TYPES,
            "excluded_statuses": excluded_statuses,
        })
