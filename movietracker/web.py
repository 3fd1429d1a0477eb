# movietracker/web.py
from flask import Blueprint, request, jsonify, session, current_app, abort
from movietracker.cache import RETRY_MESSAGE, ToggleFailed
from movietracker.catalog import CatalogClient, CatalogError
from movietracker.models import LIST_NAMES, MediaRecord
from movietracker.service import MediaListStore, ValidationError, NotFoundError, StoreError
from movietracker.session import SessionRegistry, UserSession
import logging

logger = logging.getLogger(__name__)

bp = Blueprint("main", __name__, url_prefix="")  # blueprint name = 'main'

def register_routes(app, service: MediaListStore, catalog: CatalogClient):
    """
    Register blueprint and inject SERVICE, CATALOG and SESSIONS into app.config.
    Call this once during app creation (run.create_app does this).
    """
    app.config.setdefault("SERVICE", service)
    app.config.setdefault("CATALOG", catalog)
    app.config.setdefault("SESSIONS", SessionRegistry(service))
    app.register_blueprint(bp)
    logger.debug("Registered blueprint 'main' and injected SERVICE/CATALOG/SESSIONS")

def register_error_handlers(app):
    """Centralized handlers for service exceptions."""
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        logger.warning("ValidationError: %s", e)
        return jsonify(error=str(e)), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        logger.info("NotFoundError: %s", e)
        return jsonify(error=str(e)), 404

    @app.errorhandler(StoreError)
    def handle_store_error(e):
        # one generic, retry-prompting message for every store failure
        logger.error("StoreError: %s", e)
        msg = RETRY_MESSAGE if isinstance(e, ToggleFailed) else "Something went wrong. Please try again."
        return jsonify(error=msg), 503

    @app.errorhandler(CatalogError)
    def handle_catalog_error(e):
        logger.error("CatalogError: %s", e)
        return jsonify(error=str(e)), 502

    @app.errorhandler(401)
    def handle_unauthorized(e):
        return jsonify(error="login required"), 401

# helpers to get injected objects
def current_service() -> MediaListStore:
    return current_app.config["SERVICE"]

def current_catalog() -> CatalogClient:
    return current_app.config["CATALOG"]

def current_session() -> UserSession:
    """Session of the signed-in user; 401 when nobody is signed in."""
    sessions: SessionRegistry = current_app.config["SESSIONS"]
    user_session = sessions.get(session.get("user_id"))
    if user_session is None:
        # process restarted or never logged in
        abort(401)
    return user_session

def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}

def _record_body(media_type=None, media_id=None) -> MediaRecord:
    """Record from the "record" member or the whole body; the URL key wins."""
    data = _json_body()
    record = data.get("record", data)
    if record is None:
        record = {}
    if not isinstance(record, dict):
        raise ValidationError("record must be an object")
    if media_id is not None:
        record = dict(record, id=media_id, mediaType=media_type)
    try:
        return MediaRecord.from_dict(record)
    except ValueError as e:
        raise ValidationError(str(e)) from e

# -----------------------
# Identity
# -----------------------
@bp.route("/session/login", methods=["POST"])
def login():
    user_id = str(_json_body().get("user_id") or "").strip()
    if not user_id:
        raise ValidationError("user_id required")
    user_session = current_app.config["SESSIONS"].open(user_id)
    session["user_id"] = user_session.user_id
    return jsonify(user_id=user_session.user_id, watchlist_size=len(user_session.cache))

@bp.route("/session/logout", methods=["POST"])
def logout():
    user_id = session.pop("user_id", None)
    current_app.config["SESSIONS"].close(user_id)
    return jsonify(ok=True)

# -----------------------
# Lists
# -----------------------
@bp.route("/lists")
def lists():
    s = current_session()
    return jsonify(current_service().get_all_lists(s.user_id).to_dict())

@bp.route("/lists/<name>")
def list_items(name: str):
    s = current_session()
    items = current_service().list_items(s.user_id, name, media_type=request.args.get("type"))
    return jsonify(items=[r.to_dict() for r in items])

@bp.route("/lists/<name>", methods=["POST"])
def list_add(name: str):
    s = current_session()
    if name == "watchlist":
        added = s.add_to_watchlist(_record_body())
    else:
        added = current_service().add_to_list(s.user_id, name, _record_body())
    return jsonify(added=added), (201 if added else 200)

@bp.route("/lists/<name>/<media_type>/<media_id>", methods=["DELETE"])
def list_remove(name: str, media_type: str, media_id: str):
    s = current_session()
    if name not in LIST_NAMES:
        raise NotFoundError("list not found")
    removed = s.remove_item(name, media_id, media_type)
    return jsonify(removed=removed)

# -----------------------
# Per-title status
# -----------------------
@bp.route("/media/<media_type>/<media_id>/status")
def media_status(media_type: str, media_id: str):
    s = current_session()
    return jsonify(current_service().get_status(s.user_id, media_id, media_type).to_dict())

@bp.route("/media/<media_type>/<media_id>/watchlist/toggle", methods=["POST"])
def watchlist_toggle(media_type: str, media_id: str):
    s = current_session()
    record = _record_body(media_type, media_id)
    in_watchlist = s.toggle_watchlist(media_id, media_type, record)
    return jsonify(inWatchlist=in_watchlist)

@bp.route("/media/<media_type>/<media_id>/watched", methods=["POST"])
def watched(media_type: str, media_id: str):
    s = current_session()
    data = _json_body()
    flag = data.get("watched", True)
    if not isinstance(flag, bool):
        raise ValidationError("watched must be true or false")
    record = _record_body(media_type, media_id) if data.get("record") is not None else None
    current_service().set_watched_status(s.user_id, media_id, media_type, flag, record)
    return jsonify(current_service().get_status(s.user_id, media_id, media_type).to_dict())

@bp.route("/media/<media_type>/<media_id>/mark-watched", methods=["POST"])
def mark_watched(media_type: str, media_id: str):
    s = current_session()
    record = _record_body(media_type, media_id) if _json_body().get("record") is not None else None
    s.mark_watched(media_id, media_type, record)
    return jsonify(current_service().get_status(s.user_id, media_id, media_type).to_dict())

@bp.route("/media/<media_type>/<media_id>/rating", methods=["POST"])
def rating(media_type: str, media_id: str):
    s = current_session()
    value = _json_body().get("rating")
    current_service().set_rating(s.user_id, media_id, media_type, value)
    return jsonify(rating=value or 0)

# -----------------------
# Catalog
# -----------------------
@bp.route("/catalog/<category>")
@bp.route("/catalog/<category>/<media_type>")
def catalog_browse(category: str, media_type: str = "all"):
    page = request.args.get("page", "1")
    page = int(page) if page.isdigit() else 1
    return jsonify(current_catalog().browse(category, media_type, page))

@bp.route("/catalog/search")
def catalog_search():
    q = (request.args.get("q") or "").strip()
    if not q:
        raise ValidationError("query required")
    page = request.args.get("page", "1")
    page = int(page) if page.isdigit() else 1
    media_type = request.args.get("type")
    cat = current_catalog()
    if media_type:
        return jsonify(cat.search(media_type, q, page))
    return jsonify(cat.search_multi(q, page))

@bp.route("/catalog/title/<media_type>/<int:media_id>")
def catalog_details(media_type: str, media_id: int):
    return jsonify(current_catalog().details(media_type, media_id))

TITLE_PARTS = ("credits", "videos", "similar", "recommendations")

@bp.route("/catalog/title/<media_type>/<int:media_id>/<part>")
def catalog_title_part(media_type: str, media_id: int, part: str):
    if part not in TITLE_PARTS:
        raise NotFoundError(f"unknown title resource: {part}")
    fetch = getattr(current_catalog(), part)
    return jsonify(fetch(media_type, media_id))

# -----------------------
# Profile
# -----------------------
def _profile_or_404(user_id: str):
    profile = current_service().get_user_profile(user_id)
    if profile is None:
        raise NotFoundError("profile not found")
    return profile

@bp.route("/profile")
def profile():
    s = current_session()
    return jsonify(_profile_or_404(s.user_id).to_dict())

@bp.route("/profile", methods=["POST"])
def profile_create():
    s = current_session()
    data = _json_body()
    created = current_service().create_user_profile(s.user_id, data.get("email"), data.get("display_name"))
    return jsonify(_profile_or_404(s.user_id).to_dict()), (201 if created else 200)

@bp.route("/profile", methods=["PATCH"])
def profile_update():
    s = current_session()
    current_service().update_display_name(s.user_id, _json_body().get("display_name"))
    return jsonify(_profile_or_404(s.user_id).to_dict())
