import pytest
from movietracker.repo import InMemoryDocumentStore
from movietracker.service import MediaListStore, NotFoundError, ValidationError
from movietracker.models import MediaKey, MediaRecord, MediaStatus, UserMediaDocument

# ---------- Fixtures ----------
@pytest.fixture
def docs():
    return InMemoryDocumentStore()

@pytest.fixture
def svc(docs):
    return MediaListStore(docs)

@pytest.fixture
def movie():
    return {"id": 42, "mediaType": "movie", "title": "Heat", "poster_path": "/heat.jpg",
            "vote_average": 7.9, "release_date": "1995-12-15", "overview": "dropped"}

# ---------- Documents ----------
def test_ensure_document_creates_empty_default(svc, docs):
    svc.ensure_document("u1")
    d = docs.get_document("u1")
    assert d["watchlist"] == [] and d["watching"] == [] and d["completed"] == [] and d["favorites"] == []
    assert d["ratings"] == {}
    assert d["lastUpdated"]

def test_ensure_document_is_idempotent(svc, docs, movie):
    svc.add_to_list("u1", "watchlist", movie)
    svc.ensure_document("u1")
    assert len(docs.get_document("u1")["watchlist"]) == 1

def test_get_all_lists_creates_missing_document(svc, docs):
    lists = svc.get_all_lists("nobody")
    assert isinstance(lists, UserMediaDocument)
    assert lists.watchlist == [] and lists.ratings == {}
    assert docs.get_document("nobody") is not None

# ---------- add_to_list ----------
def test_add_to_list_normalizes_record(svc, docs, movie):
    assert svc.add_to_list("u1", "watchlist", movie) is True
    stored = docs.get_document("u1")["watchlist"][0]
    assert stored["id"] == 42 and stored["mediaType"] == "movie" and stored["title"] == "Heat"
    assert stored["posterPath"] == "/heat.jpg" and stored["voteAverage"] == 7.9
    assert "overview" not in stored
    assert "addedAt" in stored and "startedAt" not in stored

@pytest.mark.parametrize("list_name,stamp", [
    ("watchlist", "addedAt"), ("favorites", "addedAt"),
    ("watching", "startedAt"), ("completed", "watchedAt"),
])
def test_add_to_list_stamps_list_timestamp(svc, docs, movie, list_name, stamp):
    svc.add_to_list("u1", list_name, movie)
    stored = docs.get_document("u1")[list_name][0]
    assert stamp in stored

def test_add_to_list_no_duplicates(svc, movie):
    assert svc.add_to_list("u1", "watchlist", movie) is True
    assert svc.add_to_list("u1", "watchlist", movie) is False
    assert svc.add_to_list("u1", "watchlist", dict(movie, id="42")) is False
    items = svc.get_all_lists("u1").watchlist
    assert len([r for r in items if r.key == MediaKey("movie", 42)]) == 1

def test_same_id_different_type_are_distinct(svc, movie):
    svc.add_to_list("u1", "watchlist", movie)
    svc.add_to_list("u1", "watchlist", dict(movie, mediaType="tv", name="Heat (TV)"))
    assert len(svc.get_all_lists("u1").watchlist) == 2

def test_item_may_sit_in_several_lists(svc, movie):
    svc.add_to_list("u1", "watchlist", movie)
    svc.add_to_list("u1", "favorites", movie)
    lists = svc.get_all_lists("u1")
    assert lists.watchlist[0].key == lists.favorites[0].key

def test_add_to_unknown_list_raises(svc, movie):
    with pytest.raises(ValidationError):
        svc.add_to_list("u1", "dropped", movie)

@pytest.mark.parametrize("bad", [{"id": 1, "mediaType": "person"}, {"id": "abc", "mediaType": "movie"}, {"mediaType": "tv"}])
def test_add_invalid_record_raises(svc, bad):
    with pytest.raises(ValidationError):
        svc.add_to_list("u1", "watchlist", bad)

# ---------- remove_from_list ----------
def test_remove_from_list(svc, movie):
    svc.add_to_list("u1", "watching", movie)
    assert svc.remove_from_list("u1", "watching", 42, "movie") is True
    assert svc.get_all_lists("u1").watching == []

def test_remove_missing_is_noop(svc, movie):
    svc.add_to_list("u1", "watchlist", movie)
    assert svc.remove_from_list("u1", "watchlist", 7, "movie") is False
    assert svc.remove_from_list("u1", "watchlist", 42, "tv") is False
    assert len(svc.get_all_lists("u1").watchlist) == 1

def test_remove_without_document_is_noop(svc, docs):
    assert svc.remove_from_list("ghost", "favorites", 1, "tv") is False
    assert docs.get_document("ghost") is None

def test_remove_accepts_string_id(svc, movie):
    svc.add_to_list("u1", "watchlist", movie)
    assert svc.remove_from_watchlist("u1", "42", "movie") is True

# ---------- get_status ----------
def test_status_defaults_without_document(svc, docs):
    st = svc.get_status("ghost", 42, "movie")
    assert st == MediaStatus(in_watchlist=False, watched=False, rating=0)
    assert docs.get_document("ghost") is None

def test_status_reflects_lists_and_rating(svc, movie):
    svc.add_to_watchlist("u1", movie)
    svc.set_rating("u1", 42, "movie", 8)
    st = svc.get_status("u1", 42, "movie")
    assert st.in_watchlist and not st.watched and st.rating == 8
    assert st.to_dict() == {"inWatchlist": True, "watched": False, "rating": 8}

# ---------- set_watched_status ----------
def test_watched_copies_watchlist_entry(svc, docs, movie):
    svc.add_to_watchlist("u1", movie)
    svc.set_watched_status("u1", 42, "movie", True)
    completed = docs.get_document("u1")["completed"]
    assert len(completed) == 1
    assert completed[0]["title"] == "Heat" and "watchedAt" in completed[0] and "addedAt" not in completed[0]
    # watchlist untouched
    assert len(docs.get_document("u1")["watchlist"]) == 1

def test_watched_prefers_given_record(svc, movie):
    svc.add_to_watchlist("u1", dict(movie, title="Old title"))
    svc.set_watched_status("u1", 42, "movie", True, record=movie)
    assert svc.get_all_lists("u1").completed[0].title == "Heat"

def test_watched_placeholder_when_unknown(svc):
    svc.set_watched_status("u1", 5, "tv", True)
    rec = svc.get_all_lists("u1").completed[0]
    assert rec.key == MediaKey("tv", 5) and rec.title == "Unknown"

def test_watched_record_without_media_type_uses_key(svc):
    # catalog details carry no media_type
    svc.set_watched_status("u1", 42, "movie", True, record={"id": 42, "title": "Heat"})
    assert svc.get_status("u1", 42, "movie").watched is True
    assert svc.get_all_lists("u1").completed[0].title == "Heat"

def test_watched_record_is_stored_under_given_key(svc):
    svc.set_watched_status("u1", 42, "movie", True, record={"id": 7, "mediaType": "tv", "title": "Heat"})
    assert svc.get_status("u1", 42, "movie").watched is True
    assert svc.get_status("u1", 7, "tv").watched is False
    rec = MediaRecord(id=8, media_type="tv", title="Lost")
    svc.set_watched_status("u1", 9, "tv", True, record=rec)
    assert [r.key for r in svc.get_all_lists("u1").completed] == [MediaKey("movie", 42), MediaKey("tv", 9)]

@pytest.mark.parametrize("bad", [["x"], "Heat", 42])
def test_non_object_record_raises(svc, bad):
    with pytest.raises(ValidationError, match="record must be an object"):
        svc.add_to_list("u1", "favorites", bad)
    with pytest.raises(ValidationError):
        svc.set_watched_status("u1", 1, "movie", True, record=bad)

def test_unwatch_removes_from_completed(svc):
    svc.set_watched_status("u1", 5, "tv", True)
    svc.set_watched_status("u1", 5, "tv", True)
    assert len(svc.get_all_lists("u1").completed) == 1
    svc.set_watched_status("u1", 5, "tv", False)
    assert svc.get_all_lists("u1").completed == []
    assert svc.get_status("u1", 5, "tv").watched is False

# ---------- set_rating ----------
def test_rating_round_trip(svc, docs):
    svc.set_rating("u1", 42, "movie", 7)
    assert svc.get_status("u1", 42, "movie").rating == 7
    svc.set_rating("u1", 42, "movie", 0)
    assert svc.get_status("u1", 42, "movie").rating == 0
    assert "movie_42" not in docs.get_document("u1")["ratings"]

def test_rating_upsert_keeps_other_keys(svc, docs):
    svc.set_rating("u1", 1, "movie", 3)
    svc.set_rating("u1", 1, "tv", 9)
    svc.set_rating("u1", 1, "movie", 4)
    assert docs.get_document("u1")["ratings"] == {"movie_1": 4, "tv_1": 9}
    assert svc.get_all_lists("u1").ratings == {MediaKey("movie", 1): 4, MediaKey("tv", 1): 9}

@pytest.mark.parametrize("bad", [-1, 11, 7.5, "8", None, True])
def test_rating_out_of_range(svc, bad):
    with pytest.raises(ValidationError):
        svc.set_rating("u1", 1, "movie", bad)

# ---------- list_items ----------
def test_list_items_filters_by_type(svc, movie):
    svc.add_to_list("u1", "favorites", movie)
    svc.add_to_list("u1", "favorites", {"id": 9, "media_type": "tv", "name": "Lost"})
    assert [r.title for r in svc.list_items("u1", "favorites", "tv")] == ["Lost"]
    assert len(svc.list_items("u1", "favorites")) == 2

# ---------- models ----------
def test_media_record_from_catalog_shape():
    rec = MediaRecord.from_dict({"id": 9, "name": "Lost", "first_air_date": "2004-09-22",
                                 "poster_path": None}, media_type="tv")
    assert rec.title == "Lost" and rec.release_date == "2004-09-22"
    assert "posterPath" not in rec.to_dict()

def test_storage_key_format():
    key = MediaKey.of("42", "movie")
    assert key.storage_key == "movie_42"
    assert MediaKey.from_storage_key("tv_9") == MediaKey("tv", 9)

# ---------- Profile ----------
def test_create_profile_defaults(svc, docs):
    assert svc.create_user_profile("u1", "ann@example.com") is True
    p = svc.get_user_profile("u1")
    assert p.display_name == "ann" and p.email == "ann@example.com"
    assert p.preferences == {"theme": "light"} and p.created_at
    # media lists come with the profile
    assert docs.get_document("u1")["watchlist"] == []

def test_create_profile_keeps_existing(svc, movie):
    svc.add_to_watchlist("u1", movie)
    assert svc.create_user_profile("u1", "ann@example.com", display_name=" Ann ") is True
    assert svc.create_user_profile("u1", "other@example.com", display_name="Other") is False
    p = svc.get_user_profile("u1")
    assert (p.display_name, p.email) == ("Ann", "ann@example.com")
    assert len(svc.get_all_lists("u1").watchlist) == 1

@pytest.mark.parametrize("email", ["", "   ", None])
def test_create_profile_requires_email(svc, email):
    with pytest.raises(ValidationError, match="email"):
        svc.create_user_profile("u1", email)

def test_get_profile_missing_is_none(svc):
    assert svc.get_user_profile("nobody") is None

def test_update_display_name(svc, docs):
    svc.create_user_profile("u1", "ann@example.com")
    svc.update_display_name("u1", "  Annie ")
    p = svc.get_user_profile("u1")
    assert p.display_name == "Annie" and p.last_updated
    assert p.to_dict()["lastUpdated"] == p.last_updated

@pytest.mark.parametrize("bad", ["", "  ", None, 3])
def test_update_display_name_rejects_empty(svc, bad):
    svc.create_user_profile("u1", "ann@example.com")
    with pytest.raises(ValidationError):
        svc.update_display_name("u1", bad)
    assert svc.get_user_profile("u1").display_name == "ann"

def test_update_display_name_without_profile(svc):
    with pytest.raises(NotFoundError):
        svc.update_display_name("nobody", "Ann")
