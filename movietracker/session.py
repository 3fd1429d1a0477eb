# movietracker/session.py
import logging
import threading
from typing import Dict, Optional

from movietracker.cache import ToggleFailed, WatchlistCache, optimistic
from movietracker.models import MediaRecord
from movietracker.service import MediaListStore, RecordInput, StoreError, ValidationError

logger = logging.getLogger(__name__)

class UserSession:
    """
    Everything tied to one signed-in identity: the user id, the list store and
    that user's watchlist cache. Created at login, closed at logout.
    """

    def __init__(self, user_id: str, store: MediaListStore, cache: Optional[WatchlistCache] = None):
        if not user_id or not str(user_id).strip():
            raise ValidationError("user id required")
        self.user_id = str(user_id).strip()
        self.store = store
        self.cache = cache or WatchlistCache(store)
        self.cache.load(self.user_id)
        logger.info("Opened session for user %s", self.user_id)

    def close(self) -> None:
        self.cache.clear()
        logger.info("Closed session for user %s", self.user_id)

    def toggle_watchlist(self, media_id, media_type, record: Optional[MediaRecord] = None) -> bool:
        return self.cache.toggle(media_id, media_type, record)

    def add_to_watchlist(self, record: MediaRecord) -> bool:
        """
        Add through the cache. Unlike toggle_watchlist this never removes, and
        the result is the store's answer: False when it already had the item.
        """
        key = record.key
        was_present = key in self.cache.keys()

        def undo():
            if not was_present:
                self.cache.mark_absent(key.media_id, key.media_type)

        try:
            return optimistic(
                lambda: self.cache.mark_present(key.media_id, key.media_type),
                lambda: self.store.add_to_watchlist(self.user_id, record),
                undo,
            )
        except StoreError as e:
            logger.warning("Watchlist add of %s failed for user %s, reverted: %s",
                           key.storage_key, self.user_id, e)
            raise ToggleFailed(key=key) from e

    def mark_watched(self, media_id, media_type, record: Optional[RecordInput] = None) -> None:
        """
        Add to completed, then drop from the watchlist. The two steps are not
        atomic; if the second one fails the item sits in both lists until it
        is removed again. The cache is resynchronized from the store on any
        failure.
        """
        key = self.cache.key_for(media_id, media_type)
        try:
            self.store.set_watched_status(self.user_id, key.media_id, key.media_type, True, record)
            optimistic(
                lambda: self.cache.mark_absent(key.media_id, key.media_type),
                lambda: self.store.remove_from_watchlist(self.user_id, key.media_id, key.media_type),
                lambda: self.cache.mark_present(key.media_id, key.media_type),
            )
        except StoreError:
            logger.exception("mark_watched failed for %s user %s", key.storage_key, self.user_id)
            self.cache.force_refresh()
            raise

    def remove_item(self, list_name: str, media_id, media_type) -> bool:
        if list_name != "watchlist":
            return self.store.remove_from_list(self.user_id, list_name, media_id, media_type)
        key = self.cache.key_for(media_id, media_type)
        was_present = key in self.cache.keys()

        def restore():
            if was_present:
                self.cache.mark_present(key.media_id, key.media_type)

        try:
            return optimistic(
                lambda: self.cache.mark_absent(key.media_id, key.media_type),
                lambda: self.store.remove_from_watchlist(self.user_id, key.media_id, key.media_type),
                restore,
            )
        except StoreError:
            logger.exception("remove_item failed for %s user %s", key.storage_key, self.user_id)
            self.cache.force_refresh()
            raise

class SessionRegistry:
    """Open sessions of this process, keyed by user id."""

    def __init__(self, store: MediaListStore):
        self.store = store
        self._sessions: Dict[str, UserSession] = {}
        self._lock = threading.Lock()

    def open(self, user_id: str) -> UserSession:
        user_id = str(user_id).strip()
        with self._lock:
            existing = self._sessions.get(user_id)
            if existing is not None:
                existing.cache.force_refresh()
                return existing
            s = UserSession(user_id, self.store)
            self._sessions[s.user_id] = s
            return s

    def get(self, user_id: Optional[str]) -> Optional[UserSession]:
        if user_id is None:
            return None
        return self._sessions.get(str(user_id))

    def close(self, user_id: Optional[str]) -> None:
        if user_id is None:
            return
        with self._lock:
            s = self._sessions.pop(str(user_id), None)
        if s is not None:
            s.close()
