from flask import Blueprint, jsonify, request

from ..services.record_store import SORTS, RecordStore

bp = Blueprint("reviewers", __name__)


@bp.get("/api/reviewers/available")
def available_reviewers():
    keys = ("id", "first_name", "last_name", "specialty", "phone", "email")
    return jsonify([{k: getattr(r, k) for k in keys} for r in RecordStore().available_reviewers()])


@bp.patch("/api/reviewers/<int:reviewer_id>/availability")
def update_availability(reviewer_id):
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("is_available"), bool):
        return jsonify({"error": "is_available (bool) is required"}), 400
    user = RecordStore().set_availability(reviewer_id, data["is_available"])
    if user is None:
        return jsonify({"error": "Reviewer not found"}), 404
    return jsonify({"message": "Availability updated successfully", "is_available": user.is_available})


@bp.get("/api/reviewers/<int:reviewer_id>/deliveries")
def list_reviewer_deliveries(reviewer_id):
    sort = request.args.get("sortBy") or request.args.get("sort") or "newest"
    if sort not in SORTS:
        sort = "newest"
    items = RecordStore().list_deliveries_by_reviewer(reviewer_id, sort=sort)
    return jsonify([d.to_dict(with_submission=True) for d in items])
