from __future__ import annotations

from flask import current_app, g, jsonify, request

from smartmark.api import api_bp
from smartmark.extensions import db
from smartmark.models import Bookmark
from smartmark.services.change_feed import (
    head_cursor,
    log_bookmark_deleted,
    log_bookmark_inserted,
    pull_change_events,
)
from smartmark.services.common import normalize_url
from smartmark.services.security import api_auth_required


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "smartmark"})


@api_bp.route("/bookmarks", methods=["GET"])
@api_auth_required
def bookmarks_list_api():
    user = g.api_user
    items = (
        Bookmark.query.filter_by(user_id=user.id)
        .order_by(Bookmark.created_at.desc(), Bookmark.id.asc())
        .all()
    )
    return jsonify({"bookmarks": [item.as_dict() for item in items]})


@api_bp.route("/bookmarks", methods=["POST"])
@api_auth_required
def bookmarks_create_api():
    user = g.api_user
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}

    raw_title = payload.get("title")
    title = raw_title.strip() if isinstance(raw_title, str) else ""
    url = normalize_url(payload.get("url"))

    if not title:
        return jsonify({"error": "Title is required."}), 400
    if not url:
        return jsonify({"error": "A valid URL is required."}), 400

    bookmark = Bookmark(user_id=user.id, title=title, url=url)
    db.session.add(bookmark)
    db.session.flush()
    log_bookmark_inserted(bookmark)
    db.session.commit()
    return jsonify({"bookmark": bookmark.as_dict()})


@api_bp.route("/bookmarks/", methods=["DELETE"], defaults={"bookmark_id": ""})
@api_bp.route("/bookmarks/<bookmark_id>", methods=["DELETE"])
@api_auth_required
def bookmarks_delete_api(bookmark_id: str):
    user = g.api_user
    bookmark_id = (bookmark_id or "").strip()
    if not bookmark_id:
        return jsonify({"error": "Bookmark id is required."}), 400

    bookmark = Bookmark.query.filter_by(id=bookmark_id, user_id=user.id).first()
    if not bookmark:
        return jsonify({"error": "Bookmark not found."}), 404

    log_bookmark_deleted(bookmark)
    db.session.delete(bookmark)
    db.session.commit()
    return "", 204


@api_bp.route("/realtime/bookmarks", methods=["GET"])
@api_auth_required
def realtime_bookmarks_pull():
    user = g.api_user
    user_filter = request.args.get("user_id")
    if user_filter and user_filter != user.id:
        return jsonify({"error": "Subscription filter does not match the session."}), 403

    since = request.args.get("since", type=int)
    if since is None:
        return jsonify({"events": [], "cursor": head_cursor(user.id), "has_more": False})

    max_limit = current_app.config["REALTIME_PULL_LIMIT"]
    limit = request.args.get("limit", default=max_limit, type=int)
    limit = max(1, min(limit, max_limit))
    events = pull_change_events(user.id, since, limit)
    latest_cursor = events[-1].id if events else since
    return jsonify(
        {
            "events": [event.as_dict() for event in events],
            "cursor": latest_cursor,
            "has_more": len(events) == limit,
        }
    )
