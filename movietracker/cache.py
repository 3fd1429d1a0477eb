# movietracker/cache.py
import logging
from dataclasses import replace
from typing import Callable, Optional, Set, TypeVar

from movietracker.models import MediaKey, MediaRecord
from movietracker.service import MediaListStore, StoreError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_MESSAGE = "Failed to update your watchlist. Please try again."

class ToggleFailed(StoreError):
    """A remote watchlist mutation failed and the local change was reverted."""

    def __init__(self, message: str = RETRY_MESSAGE, key: Optional[MediaKey] = None):
        super().__init__(message)
        self.key = key

def optimistic(apply: Callable[[], None], attempt: Callable[[], T], revert: Callable[[], None]) -> T:
    """
    Apply a local change, then attempt the remote one. If the attempt raises,
    undo the local change and re-raise.
    """
    apply()
    try:
        return attempt()
    except Exception:
        revert()
        raise

class WatchlistCache:
    """
    Session-local set of the watchlist keys for one identity. Only a mirror of
    MediaListStore for instant membership answers, never a source of truth.
    """

    def __init__(self, store: MediaListStore):
        self.store = store
        self._keys: Set[MediaKey] = set()
        self._user_id: Optional[str] = None
        self.loading = False

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def __len__(self) -> int:
        return len(self._keys)

    def keys(self) -> Set[MediaKey]:
        return set(self._keys)

    def load(self, user_id: Optional[str]) -> None:
        """Replace the whole set from the user's stored watchlist; None clears."""
        if user_id is None:
            self.clear()
            return
        self._user_id = user_id
        self.loading = True
        try:
            lists = self.store.get_all_lists(user_id)
            self._keys = {r.key for r in lists.watchlist}
            logger.debug("Loaded %d watchlist keys for user %s", len(self._keys), user_id)
        finally:
            self.loading = False

    def clear(self) -> None:
        self._keys = set()
        self._user_id = None

    def force_refresh(self) -> None:
        self.load(self._user_id)

    def has(self, media_id, media_type) -> bool:
        try:
            return MediaKey.of(media_id, media_type) in self._keys
        except ValueError:
            return False

    def mark_present(self, media_id, media_type) -> None:
        self._keys.add(self.key_for(media_id, media_type))

    def mark_absent(self, media_id, media_type) -> None:
        self._keys.discard(self.key_for(media_id, media_type))

    def key_for(self, media_id, media_type) -> MediaKey:
        try:
            return MediaKey.of(media_id, media_type)
        except ValueError as e:
            raise ValidationError(str(e)) from e

    def toggle(self, media_id, media_type, record: Optional[MediaRecord] = None) -> bool:
        """
        Flip watchlist membership: local set first, then the store. Returns the
        new membership. On store failure the local flip is undone and
        ToggleFailed is raised.
        """
        if self._user_id is None:
            raise ValidationError("no signed-in user")
        key = self.key_for(media_id, media_type)
        user_id = self._user_id
        present = key in self._keys

        if present:
            apply = lambda: self._keys.discard(key)
            revert = lambda: self._keys.add(key)
            attempt = lambda: self.store.remove_from_watchlist(user_id, key.media_id, key.media_type)
        else:
            if record is None:
                record = MediaRecord(id=key.media_id, media_type=key.media_type)
            else:
                record = replace(record, id=key.media_id, media_type=key.media_type)
            apply = lambda: self._keys.add(key)
            revert = lambda: self._keys.discard(key)
            attempt = lambda: self.store.add_to_watchlist(user_id, record)

        try:
            optimistic(apply, attempt, revert)
        except StoreError as e:
            logger.warning("Watchlist toggle of %s failed for user %s, reverted: %s",
                           key.storage_key, user_id, e)
            raise ToggleFailed(key=key) from e
        return not present
