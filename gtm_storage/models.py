"""
Result types returned by the storage client.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Optional


@dataclass(frozen=True)
class ObjectMetadata:
    """Object metadata from a HEAD request or a listing entry."""
    key: str
    content_type: str
    last_modified: Optional[datetime]
    etag: str
    size: int
    name: str = ""


@dataclass(frozen=True)
class UploadOutcome:
    """Result of a successful upload."""
    key: str
    etag: str
    preview_url: Optional[str] = None
    thumbnail_url: Optional[str] = None


@dataclass(frozen=True)
class ListingResult:
    """
    Objects returned by a bucket listing, in server order.

    Iterating a ListingResult yields its ObjectMetadata entries.
    """
    bucket: str
    prefix: str
    objects: List[ObjectMetadata] = field(default_factory=list)

    def __iter__(self) -> Iterator[ObjectMetadata]:
        return iter(self.objects)

    def __len__(self) -> int:
        return len(self.objects)

    @property
    def keys(self) -> List[str]:
        return [obj.key for obj in self.objects]
