"""
Pydantic Models for Status Items, Routing and Digests

This file contains the data models shared by the Fan-out Router, the Digest
Aggregator, the Record Store and the Slack adapters.

Naming Convention:
- Descriptor keys: channel, tags, token
- Model fields: destination, tags, credential
"""

from datetime import datetime
from enum import Enum
from typing import List, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# =============================================================================
# STATUS ITEMS
# =============================================================================

class MessageType(str, Enum):
    """Kind of status submission, selects the primary-destination template"""
    on = "on"
    til = "til"
    done = "done"


class StatusItem(BaseModel):
    """One persisted user-authored status message"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Opaque unique identifier assigned at creation")
    user_id: str = Field(default="", description="Stable identifier of the authoring user")
    user_name: str = Field(default="", description="Display name at time of authoring")
    text: str = Field(..., min_length=1, description="Message body, trimmed")
    created_at: datetime = Field(..., description="Creation timestamp assigned by the system (UTC)")

# =============================================================================
# ROUTING CONFIGURATION
# =============================================================================

class RoutingRule(BaseModel):
    """One configured fan-out/digest target"""
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    destination: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("channel", "destination"),
        description="Channel/target name",
    )
    tags: Tuple[str, ...] = Field(default=(), description="Substrings to match; empty means no filtering")
    credential: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("token", "credential"),
        repr=False,
        description="Delivery credential bound to this destination",
    )

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        if value is None:
            return ()
        if isinstance(value, str):
            raise ValueError("tags must be a list of strings")
        return value

    @field_validator("tags")
    @classmethod
    def _reject_blank_tags(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        # A blank tag would be a substring of every text
        if any(not tag for tag in value):
            raise ValueError("tags must not contain empty strings")
        return value

    def matches(self, text: str) -> bool:
        """Tag match: case-sensitive substring containment of any tag"""
        return any(tag in text for tag in self.tags)


class RoutingConfiguration(BaseModel):
    """Ordered, read-only list of routing rules loaded at startup"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    items: Tuple[RoutingRule, ...] = Field(default=())

# =============================================================================
# OWNER DIRECTORY
# =============================================================================

class DirectoryUser(BaseModel):
    """User as returned by the external owner directory"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    is_bot: bool = False
    is_deactivated: bool = False

    @property
    def is_eligible(self) -> bool:
        return not (self.is_bot or self.is_deactivated)

# =============================================================================
# DIGESTS
# =============================================================================

class DigestWindow(BaseModel):
    """Half-open interval [start, end) covered by one aggregation run"""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


class DigestBlock(BaseModel):
    """Per-owner summary: a title and one line per surviving item"""
    model_config = ConfigDict(frozen=True)

    title: str
    lines: Tuple[str, ...]

    @property
    def value(self) -> str:
        return "\n".join(self.lines)


class Digest(BaseModel):
    """Ordered sequence of owner blocks posted as one message"""
    model_config = ConfigDict(frozen=True)

    title: str
    blocks: Tuple[DigestBlock, ...] = ()

    @property
    def owner_count(self) -> int:
        return len(self.blocks)

    @property
    def is_empty(self) -> bool:
        return not self.blocks

# =============================================================================
# RUN SUMMARIES
# =============================================================================

class DeliveryReport(BaseModel):
    """Destinations delivered to and destinations that failed"""
    delivered: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)


class FanoutResult(DeliveryReport):
    """Outcome of one ingestion"""
    item: StatusItem


class DigestRunResult(DeliveryReport):
    """Outcome of one digest run"""
    window: DigestWindow
    skipped: List[str] = Field(default_factory=list, description="Destinations with no content")
