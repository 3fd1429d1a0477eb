# movietracker/models.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

LIST_NAMES = ("watchlist", "watching", "completed", "favorites")
MEDIA_TYPES = ("movie", "tv")

# timestamp field stamped on records of each list
TIMESTAMP_FIELDS = {
    "watchlist": "addedAt",
    "favorites": "addedAt",
    "watching": "startedAt",
    "completed": "watchedAt",
}

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def parse_media_type(value: Any) -> str:
    mt = str(value or "").strip().lower()
    if mt not in MEDIA_TYPES:
        raise ValueError(f"unknown media type: {value!r}")
    return mt

def parse_media_id(value: Any) -> int:
    """Catalog ids are ints; digits from URLs and forms are coerced."""
    if isinstance(value, bool):
        raise ValueError(f"invalid media id: {value!r}")
    if isinstance(value, int):
        return value
    s = str(value or "").strip()
    if not s.isdigit():
        raise ValueError(f"invalid media id: {value!r}")
    return int(s)

@dataclass(frozen=True)
class MediaKey:
    media_type: str
    media_id: int

    @classmethod
    def of(cls, media_id: Any, media_type: Any) -> "MediaKey":
        return cls(parse_media_type(media_type), parse_media_id(media_id))

    @property
    def storage_key(self) -> str:
        # persisted rating map format
        return f"{self.media_type}_{self.media_id}"

    @classmethod
    def from_storage_key(cls, key: str) -> "MediaKey":
        mt, _, mid = key.partition("_")
        return cls.of(mid, mt)

@dataclass
class MediaRecord:
    id: int
    media_type: str
    title: str = "Unknown"
    poster_path: Optional[str] = None
    vote_average: Optional[float] = None
    release_date: Optional[str] = None
    added_at: Optional[str] = None
    started_at: Optional[str] = None
    watched_at: Optional[str] = None

    @property
    def key(self) -> MediaKey:
        return MediaKey(self.media_type, self.id)

    @classmethod
    def from_dict(cls, d: Dict[str, Any], media_type: Optional[str] = None) -> "MediaRecord":
        """
        Build a record from either the stored camelCase shape or a raw catalog
        item (poster_path, name, first_air_date...). Unknown keys are dropped.
        """
        mt = d.get("mediaType") or d.get("media_type") or media_type
        return cls(
            id=parse_media_id(d.get("id")),
            media_type=parse_media_type(mt),
            title=d.get("title") or d.get("name") or "Unknown",
            poster_path=d.get("posterPath", d.get("poster_path")),
            vote_average=d.get("voteAverage", d.get("vote_average")),
            release_date=d.get("releaseDate") or d.get("release_date") or d.get("first_air_date"),
            added_at=d.get("addedAt"),
            started_at=d.get("startedAt"),
            watched_at=d.get("watchedAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "mediaType": self.media_type, "title": self.title}
        optional = (
            ("posterPath", self.poster_path),
            ("voteAverage", self.vote_average),
            ("releaseDate", self.release_date),
            ("addedAt", self.added_at),
            ("startedAt", self.started_at),
            ("watchedAt", self.watched_at),
        )
        for name, value in optional:
            if value is not None:
                out[name] = value
        return out

    def stamped_for(self, list_name: str, when: Optional[str] = None) -> "MediaRecord":
        """Copy of this record carrying only the timestamp used by list_name."""
        ts = when or now_iso()
        field_name = TIMESTAMP_FIELDS[list_name]
        return MediaRecord(
            id=self.id, media_type=self.media_type, title=self.title,
            poster_path=self.poster_path, vote_average=self.vote_average,
            release_date=self.release_date,
            added_at=ts if field_name == "addedAt" else None,
            started_at=ts if field_name == "startedAt" else None,
            watched_at=ts if field_name == "watchedAt" else None,
        )

@dataclass
class MediaStatus:
    in_watchlist: bool = False
    watched: bool = False
    rating: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"inWatchlist": self.in_watchlist, "watched": self.watched, "rating": self.rating}

@dataclass
class UserMediaDocument:
    watchlist: List[MediaRecord] = field(default_factory=list)
    watching: List[MediaRecord] = field(default_factory=list)
    completed: List[MediaRecord] = field(default_factory=list)
    favorites: List[MediaRecord] = field(default_factory=list)
    ratings: Dict[MediaKey, int] = field(default_factory=dict)
    last_updated: Optional[str] = None

    @classmethod
    def empty(cls) -> "UserMediaDocument":
        return cls(last_updated=now_iso())

    def get_list(self, name: str) -> List[MediaRecord]:
        return getattr(self, name)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "UserMediaDocument":
        doc = cls(last_updated=d.get("lastUpdated"))
        for name in LIST_NAMES:
            setattr(doc, name, [MediaRecord.from_dict(r) for r in d.get(name) or []])
        doc.ratings = {MediaKey.from_storage_key(k): int(v) for k, v in (d.get("ratings") or {}).items()}
        return doc

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {name: [r.to_dict() for r in self.get_list(name)] for name in LIST_NAMES}
        out["ratings"] = {k.storage_key: v for k, v in self.ratings.items()}
        out["lastUpdated"] = self.last_updated
        return out

DEFAULT_PREFERENCES = {"theme": "light"}

@dataclass
class UserProfile:
    display_name: str
    email: str
    created_at: Optional[str] = None
    preferences: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_PREFERENCES))
    last_updated: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "UserProfile":
        return cls(
            display_name=d.get("displayName") or "",
            email=d.get("email") or "",
            created_at=d.get("createdAt"),
            preferences=dict(d.get("preferences") or DEFAULT_PREFERENCES),
            last_updated=d.get("lastUpdated"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "displayName": self.display_name,
            "email": self.email,
            "createdAt": self.created_at,
            "preferences": dict(self.preferences),
        }
        if self.last_updated is not None:
            out["lastUpdated"] = self.last_updated
        return out
