from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .storage import AVATAR_BUCKET, BANNER_BUCKET, storage_url


class EventStatus(str, Enum):
    DRAFT = "Draft"
    OPEN = "Terbuka"
    CLOSED = "Ditutup"
    UPCOMING = "Mendatang"
    DONE = "Selesai"


class EventType(str, Enum):
    SEMINAR = "Seminar"
    WORKSHOP = "Workshop"
    COMPETITION = "Lomba"
    UKM = "UKM"
    TECHNOLOGY = "Teknologi"
    ART_CULTURE = "Seni Budaya"
    AI = "AI"


class ViewMode(str, Enum):
    HOSTED = "hosted"
    ATTENDING = "attending"


ALL_STATUSES_TAB = "Semua"

ONLINE_LOCATION_MARKERS = ("virtual", "online", "zoom", "meet")


@dataclass
class EventForm:
    """Fields collected by the create-event form."""

    title: str = ""
    type: str = EventType.SEMINAR.value
    date: str = ""
    time: str = ""
    location: str = ""
    description: str = ""
    is_public: bool = True
    organization_id: Optional[str] = None

    def validate(self) -> None:
        missing = [
            label
            for label, value in (
                ("title", self.title),
                ("date", self.date),
                ("time", self.time),
                ("location", self.location),
            )
            if not (value or "").strip()
        ]
        if missing:
            raise ValueError(f"Please fill in the required fields: {', '.join(missing)}")

        known_types = {item.value for item in EventType}
        if self.type not in known_types:
            raise ValueError(f"Unknown event type '{self.type}'")

    def record(self, host_id: str, image_path: str | None) -> Dict[str, Any]:
        return {
            "title": self.title.strip(),
            "date": self.date,
            "time": self.time,
            "location": self.location.strip(),
            "description": self.description,
            "type": self.type,
            "is_public": self.is_public,
            "host_id": host_id,
            "organization_id": self.organization_id or None,
            "image_url": image_path,
            "status": EventStatus.OPEN.value,
        }


def is_online_location(location: str | None) -> bool:
    lowered = (location or "").lower()
    return any(marker in lowered for marker in ONLINE_LOCATION_MARKERS)


def present_event(row: Dict[str, Any], base_url: str | None = None) -> Dict[str, Any]:
    """Map an ``events`` row to the camelCase shape served to the browser."""

    return {
        "id": str(row.get("id") or ""),
        "title": row.get("title") or "",
        "date": row.get("date"),
        "time": row.get("time"),
        "location": row.get("location"),
        "type": row.get("type"),
        "status": row.get("status"),
        "description": row.get("description"),
        "isPublic": bool(row.get("is_public", True)),
        "hostId": row.get("host_id"),
        "organizationId": row.get("organization_id"),
        "imageUrl": storage_url(row.get("image_url"), BANNER_BUCKET, base_url=base_url),
        "createdAt": row.get("created_at"),
    }


def present_organization(row: Dict[str, Any], base_url: str | None = None) -> Dict[str, Any]:
    return {
        "id": str(row.get("id") or ""),
        "name": row.get("name") or "",
        "type": row.get("type"),
        "description": row.get("description"),
        "membersCount": int(row.get("members_count") or 0),
        "rating": float(row.get("rating") or 0),
        "imageUrl": storage_url(row.get("image_url"), BANNER_BUCKET, base_url=base_url),
        "bannerUrl": storage_url(row.get("banner_url"), BANNER_BUCKET, base_url=base_url),
    }


def present_avatar(avatar: str | None, email: str | None, base_url: str | None = None) -> str:
    """Uploaded avatar when present, otherwise a generated character seeded by email."""

    resolved = storage_url(avatar, AVATAR_BUCKET, base_url=base_url)
    if resolved:
        return resolved
    return f"https://api.dicebear.com/9.x/adventurer/svg?seed={email or ''}&backgroundColor=b6e3f4"
