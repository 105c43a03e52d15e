"""Domain records synced by the client.

This module provides:
- CollectedItem: A text snippet collected from a web page
- DictionaryEntry: A saved word or phrase with its translation
- HighlightAnchor: Position of a highlight inside a page
- HighlightItem: A highlight, either the user's own or an aggregate of others

All timestamps are epoch milliseconds. to_dict()/from_dict() is the local
storage form; to_wire()/from_wire() is the server form, where the owner is
called user_id and is assigned by the server.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal

HighlightSource = Literal["mine", "others"]


def _optional_int(value: Any) -> int | None:
    return int(value) if value is not None else None


@dataclass
class CollectedItem:
    """A collected text snippet."""

    id: str
    text: str
    url: str = ""
    hostname: str = ""
    title: str = ""
    owner_id: str | None = None
    created_at: int = 0
    updated_at: int = 0
    deleted_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for local storage."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CollectedItem:
        """Create from a stored dictionary."""
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            url=data.get("url", ""),
            hostname=data.get("hostname", ""),
            title=data.get("title", ""),
            owner_id=data.get("owner_id"),
            created_at=int(data.get("created_at") or 0),
            updated_at=int(data.get("updated_at") or 0),
            deleted_at=_optional_int(data.get("deleted_at")),
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize for upload."""
        return {
            "id": self.id,
            "text": self.text,
            "url": self.url,
            "hostname": self.hostname,
            "title": self.title,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "deleted_at": self.deleted_at,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> CollectedItem:
        """Create from a server record."""
        return cls(
            id=data["id"],
            text=data.get("text") or "",
            url=data.get("url") or "",
            hostname=data.get("hostname") or "",
            title=data.get("title") or "",
            owner_id=data.get("user_id"),
            created_at=int(data.get("created_at") or 0),
            updated_at=int(data["updated_at"]),
            deleted_at=_optional_int(data.get("deleted_at")),
        )


@dataclass
class DictionaryEntry:
    """A saved word or phrase.

    Older entries may lack updated_at; their effective update time falls
    back to created_at.
    """

    id: str
    source: str
    translation: str = ""
    sentence: str = ""
    url: str = ""
    title: str = ""
    hostname: str = ""
    owner_id: str | None = None
    created_at: int = 0
    updated_at: int | None = None
    deleted_at: int | None = None

    @property
    def effective_updated_at(self) -> int:
        """Update time used for last-write-wins."""
        return self.updated_at or self.created_at or 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize for local storage."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DictionaryEntry:
        """Create from a stored dictionary."""
        return cls(
            id=data["id"],
            source=data.get("source", ""),
            translation=data.get("translation", ""),
            sentence=data.get("sentence") or "",
            url=data.get("url", ""),
            title=data.get("title", ""),
            hostname=data.get("hostname", ""),
            owner_id=data.get("owner_id"),
            created_at=int(data.get("created_at") or 0),
            updated_at=_optional_int(data.get("updated_at")),
            deleted_at=_optional_int(data.get("deleted_at")),
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize for upload."""
        return {
            "id": self.id,
            "source": self.source,
            "translation": self.translation,
            "sentence": self.sentence or None,
            "url": self.url,
            "title": self.title,
            "hostname": self.hostname,
            "created_at": self.created_at,
            "updated_at": self.updated_at or self.created_at,
            "deleted_at": self.deleted_at,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> DictionaryEntry:
        """Create from a server record."""
        return cls(
            id=data["id"],
            source=data["source"],
            translation=data.get("translation") or "",
            sentence=data.get("sentence") or "",
            url=data.get("url") or "",
            title=data.get("title") or "",
            hostname=data.get("hostname") or "",
            owner_id=data.get("user_id"),
            created_at=int(data.get("created_at") or 0),
            updated_at=_optional_int(data.get("updated_at")),
            deleted_at=_optional_int(data.get("deleted_at")),
        )


@dataclass
class HighlightAnchor:
    """Text range of a highlight, resolved against the page DOM."""

    start_xpath: str = ""
    start_offset: int = 0
    end_xpath: str = ""
    end_offset: int = 0
    text: str = ""
    prefix: str | None = None
    suffix: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HighlightAnchor:
        return cls(
            start_xpath=data.get("start_xpath", ""),
            start_offset=int(data.get("start_offset") or 0),
            end_xpath=data.get("end_xpath", ""),
            end_offset=int(data.get("end_offset") or 0),
            text=data.get("text", ""),
            prefix=data.get("prefix"),
            suffix=data.get("suffix"),
        )


@dataclass
class HighlightItem:
    """A highlight on a page.

    Attributes:
        source: "mine" for the user's own highlights, "others" for
            read-only aggregates of other users' highlights.
        aggregate_id: Server id of the aggregate (others only).
        others_count: Number of users sharing the aggregate (others only).
    """

    id: str
    text: str
    url: str
    hostname: str = ""
    title: str = ""
    color: str | None = None
    anchor: HighlightAnchor | None = None
    source: HighlightSource = "mine"
    aggregate_id: str | None = None
    others_count: int | None = None
    owner_id: str | None = None
    created_at: int = 0
    updated_at: int = 0
    deleted_at: int | None = None

    @property
    def is_aggregate(self) -> bool:
        """Check if this item mirrors other users' highlights."""
        return self.source == "others"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for local storage."""
        data = asdict(self)
        data["anchor"] = self.anchor.to_dict() if self.anchor else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HighlightItem:
        """Create from a stored dictionary."""
        anchor = data.get("anchor")
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            url=data.get("url", ""),
            hostname=data.get("hostname", ""),
            title=data.get("title", ""),
            color=data.get("color"),
            anchor=HighlightAnchor.from_dict(anchor) if anchor else None,
            source=data.get("source") or "mine",
            aggregate_id=data.get("aggregate_id"),
            others_count=_optional_int(data.get("others_count")),
            owner_id=data.get("owner_id"),
            created_at=int(data.get("created_at") or 0),
            updated_at=int(data.get("updated_at") or 0),
            deleted_at=_optional_int(data.get("deleted_at")),
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize for upload."""
        return {
            "id": self.id,
            "text": self.text,
            "url": self.url,
            "hostname": self.hostname,
            "title": self.title,
            "color": self.color,
            "anchor": self.anchor.to_dict() if self.anchor else None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "deleted_at": self.deleted_at,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> HighlightItem:
        """Create from a server record of the user's own highlight."""
        anchor = data.get("anchor")
        return cls(
            id=data["id"],
            text=data.get("text") or "",
            url=data["url"],
            hostname=data.get("hostname") or "",
            title=data.get("title") or "",
            color=data.get("color"),
            anchor=HighlightAnchor.from_dict(anchor) if anchor else None,
            source="mine",
            owner_id=data.get("user_id"),
            created_at=int(data.get("created_at") or 0),
            updated_at=int(data["updated_at"]),
            deleted_at=_optional_int(data.get("deleted_at")),
        )


@dataclass
class HighlightAggregate:
    """Highlights of one text span on a page, counted across users."""

    aggregate_id: str
    url: str
    text: str
    count: int
    hostname: str = ""
    title: str = ""
    anchor: HighlightAnchor | None = None
    updated_at: int | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> HighlightAggregate:
        """Create from a server aggregate record."""
        anchor = data.get("anchor")
        return cls(
            aggregate_id=str(data["aggregate_id"]),
            url=data["url"],
            text=data.get("text") or "",
            count=int(data.get("count") or 0),
            hostname=data.get("hostname") or "",
            title=data.get("title") or "",
            anchor=HighlightAnchor.from_dict(anchor) if anchor else None,
            updated_at=_optional_int(data.get("updated_at")),
        )

    def to_highlight(self, now: int) -> HighlightItem:
        """Convert to a read-only local highlight of others."""
        updated_at = self.updated_at or now
        return HighlightItem(
            id=f"agg-{self.aggregate_id}",
            text=self.text,
            url=self.url,
            hostname=self.hostname,
            title=self.title,
            anchor=self.anchor or HighlightAnchor(text=self.text),
            source="others",
            aggregate_id=self.aggregate_id,
            others_count=self.count,
            created_at=updated_at,
            updated_at=updated_at,
        )
