# movietracker/service.py
from dataclasses import replace
from typing import Any, Dict, List, Optional, Union
import logging

from movietracker.models import (
    LIST_NAMES, MediaKey, MediaRecord, MediaStatus, UserMediaDocument, UserProfile, now_iso,
    parse_media_type,
)
from movietracker.repo import DELETE_FIELD, NotFoundError, StoreError

logger = logging.getLogger(__name__)

__all__ = ["MediaListStore", "ValidationError", "NotFoundError", "StoreError"]

# Exceptions
class ValidationError(Exception):
    """Raised when input validation fails (unknown list, bad id, rating range)."""
    pass

RecordInput = Union[MediaRecord, Dict[str, Any]]

def _key(media_id, media_type) -> MediaKey:
    try:
        return MediaKey.of(media_id, media_type)
    except ValueError as e:
        raise ValidationError(str(e)) from e

def _media_type(value) -> str:
    try:
        return parse_media_type(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e

def _check_list(list_name: str) -> str:
    if list_name not in LIST_NAMES:
        raise ValidationError(f"unknown list: {list_name!r}")
    return list_name

def _matches(raw: Dict[str, Any], key: MediaKey) -> bool:
    """Field comparison against a stored record dict."""
    try:
        return MediaKey.of(raw.get("id"), raw.get("mediaType")) == key
    except ValueError:
        return False

def _to_record(record: RecordInput) -> MediaRecord:
    if isinstance(record, MediaRecord):
        return record
    if not isinstance(record, dict):
        raise ValidationError("record must be an object")
    try:
        return MediaRecord.from_dict(record)
    except ValueError as e:
        raise ValidationError(str(e)) from e

class MediaListStore:
    """
    Per-user media lists (watchlist, watching, completed, favorites) and
    ratings on top of a document store (SqliteDocumentStore or
    InMemoryDocumentStore from movietracker.repo).

    List mutations read the document first: additions skip keys already in
    the list, removals locate the stored value and remove exactly that value.
    The read and the write are two separate store calls, so two concurrent
    mutations of the same list can still race (last writer wins).
    """

    def __init__(self, docs):
        self.docs = docs
        logger.debug("MediaListStore initialized with store %s", type(docs).__name__)

    # ---- Documents ----
    def _create_default(self, user_id: str) -> Dict[str, Any]:
        data = UserMediaDocument.empty().to_dict()
        self.docs.create_document(user_id, data)
        logger.info("Created media document for user %s", user_id)
        return data

    def _load(self, user_id: str) -> Dict[str, Any]:
        data = self.docs.get_document(user_id)
        if data is None:
            data = self._create_default(user_id)
        return data

    def ensure_document(self, user_id: str) -> None:
        """Create the default empty document if the user has none."""
        if self.docs.get_document(user_id) is None:
            self._create_default(user_id)

    def get_all_lists(self, user_id: str) -> UserMediaDocument:
        """Full document; created on first touch. Read failures yield the empty default."""
        try:
            return UserMediaDocument.from_dict(self._load(user_id))
        except (StoreError, ValueError) as e:
            logger.error("get_all_lists failed for user %s: %s", user_id, e)
            return UserMediaDocument.empty()

    def list_items(self, user_id: str, list_name: str, media_type: Optional[str] = None) -> List[MediaRecord]:
        """Records of one list, optionally restricted to one media type."""
        _check_list(list_name)
        items = self.get_all_lists(user_id).get_list(list_name)
        if media_type:
            mt = _media_type(media_type)
            items = [r for r in items if r.media_type == mt]
        return items

    # ---- Lists ----
    def _normalize(self, list_name: str, record: RecordInput) -> MediaRecord:
        return _to_record(record).stamped_for(list_name)

    def add_to_list(self, user_id: str, list_name: str, record: RecordInput) -> bool:
        """
        Append record to list_name unless (id, mediaType) is already present.
        Returns True when inserted, False for the duplicate no-op.
        """
        _check_list(list_name)
        rec = self._normalize(list_name, record)
        current = self._load(user_id).get(list_name) or []
        if any(_matches(raw, rec.key) for raw in current):
            logger.debug("add_to_list: %s already in %s for user %s", rec.key, list_name, user_id)
            return False
        self.docs.array_union(user_id, list_name, rec.to_dict())
        logger.info("Added %s to %s for user %s", rec.key.storage_key, list_name, user_id)
        return True

    def remove_from_list(self, user_id: str, list_name: str, media_id, media_type) -> bool:
        """Remove the stored record matching (id, mediaType); no-op when absent."""
        _check_list(list_name)
        key = _key(media_id, media_type)
        data = self.docs.get_document(user_id)
        if data is None:
            logger.debug("remove_from_list: no document for user %s", user_id)
            return False
        stored = next((raw for raw in data.get(list_name) or [] if _matches(raw, key)), None)
        if stored is None:
            logger.debug("remove_from_list: %s not in %s for user %s", key, list_name, user_id)
            return False
        self.docs.array_remove(user_id, list_name, stored)
        logger.info("Removed %s from %s for user %s", key.storage_key, list_name, user_id)
        return True

    def add_to_watchlist(self, user_id: str, record: RecordInput) -> bool:
        return self.add_to_list(user_id, "watchlist", record)

    def remove_from_watchlist(self, user_id: str, media_id, media_type) -> bool:
        return self.remove_from_list(user_id, "watchlist", media_id, media_type)

    # ---- Status ----
    def get_status(self, user_id: str, media_id, media_type) -> MediaStatus:
        """Watchlist/completed membership and rating. Never fails the caller."""
        key = _key(media_id, media_type)
        try:
            data = self.docs.get_document(user_id)
        except StoreError as e:
            logger.warning("get_status: read failed for user %s, assuming defaults: %s", user_id, e)
            return MediaStatus()
        if data is None:
            return MediaStatus()
        ratings = data.get("ratings") or {}
        return MediaStatus(
            in_watchlist=any(_matches(raw, key) for raw in data.get("watchlist") or []),
            watched=any(_matches(raw, key) for raw in data.get("completed") or []),
            rating=int(ratings.get(key.storage_key) or 0),
        )

    def set_watched_status(self, user_id: str, media_id, media_type, watched: bool,
                           record: Optional[RecordInput] = None) -> None:
        """
        watched=True appends to completed, using (in order) the given record,
        a copy of the matching watchlist entry, or an "Unknown" placeholder.
        The key always comes from media_id/media_type, whatever the record says.
        watched=False removes from completed. The watchlist is not touched.
        """
        key = _key(media_id, media_type)
        if not watched:
            self.remove_from_list(user_id, "completed", key.media_id, key.media_type)
            return
        if record is not None:
            if isinstance(record, dict):
                record = dict(record, id=key.media_id, mediaType=key.media_type)
            record = replace(_to_record(record), id=key.media_id, media_type=key.media_type)
        else:
            data = self._load(user_id)
            source = next((raw for raw in data.get("watchlist") or [] if _matches(raw, key)), None)
            if source is not None:
                record = MediaRecord.from_dict(source)
            else:
                record = MediaRecord(id=key.media_id, media_type=key.media_type, title="Unknown")
        self.add_to_list(user_id, "completed", record)

    def set_rating(self, user_id: str, media_id, media_type, rating: int) -> None:
        """Set a 1-10 rating; 0 removes it."""
        key = _key(media_id, media_type)
        if isinstance(rating, bool) or not isinstance(rating, int) or not 0 <= rating <= 10:
            logger.warning("set_rating: invalid rating %r", rating)
            raise ValidationError("rating must be an integer 0-10")
        self.ensure_document(user_id)
        value = DELETE_FIELD if rating == 0 else rating
        self.docs.update_fields(user_id, {f"ratings.{key.storage_key}": value, "lastUpdated": now_iso()})
        if rating == 0:
            logger.info("Cleared rating for %s user %s", key.storage_key, user_id)
        else:
            logger.info("Rated %s %s for user %s", key.storage_key, rating, user_id)

    # ---- Profile ----
    def create_user_profile(self, user_id: str, email: str, display_name: Optional[str] = None) -> bool:
        """
        Sign-up: store the profile (display name defaults to the part of the
        email before "@", theme "light") and make sure the media document
        exists. An existing profile is left as is. Returns True when created.
        """
        email = (email or "").strip() if isinstance(email, str) else ""
        if not email:
            raise ValidationError("email required")
        name = display_name.strip() if isinstance(display_name, str) else ""
        profile = UserProfile(display_name=name or email.split("@")[0], email=email, created_at=now_iso())
        created = self.docs.create_profile(user_id, profile.to_dict())
        self.ensure_document(user_id)
        if created:
            logger.info("Created profile for user %s", user_id)
        else:
            logger.debug("create_user_profile: user %s already has a profile", user_id)
        return created

    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        """Stored profile, or None when missing or unreadable."""
        try:
            data = self.docs.get_profile(user_id)
        except StoreError as e:
            logger.error("get_user_profile failed for user %s: %s", user_id, e)
            return None
        if data is None:
            logger.debug("No profile for user %s", user_id)
            return None
        return UserProfile.from_dict(data)

    def update_display_name(self, user_id: str, display_name: str) -> None:
        name = display_name.strip() if isinstance(display_name, str) else ""
        if not name:
            logger.warning("update_display_name: empty name for user %s", user_id)
            raise ValidationError("display name required")
        self.docs.update_profile(user_id, {"displayName": name, "lastUpdated": now_iso()})
        logger.info("Updated display name for user %s", user_id)
