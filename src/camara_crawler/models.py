from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union


# ------------------------- upstream responses -------------------------

@dataclass(frozen=True)
class ListingResponse:
    items: List[Dict[str, Any]]
    links: List[Dict[str, Any]] = field(default_factory=list)
    source_format: str = "json"


@dataclass(frozen=True)
class DetailResponse:
    item: Dict[str, Any]
    links: List[Dict[str, Any]] = field(default_factory=list)
    source_format: str = "json"


ApiResponse = Union[ListingResponse, DetailResponse]


# ------------------------- crawl records -------------------------

@dataclass
class SourceRecord:
    remote_id: Any
    payload: Dict[str, Any]
    remote_version: Optional[str] = None


@dataclass(frozen=True)
class SinkWrite:
    entity: str
    key: Any
    fields: Dict[str, Any]


@dataclass
class SinkPlan:
    primary: SinkWrite
    related: List[SinkWrite] = field(default_factory=list)
    marker_fields: tuple = ()
    complete: bool = True


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def marker(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None
