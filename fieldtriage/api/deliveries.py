from flask import Blueprint, jsonify, request

from ..jobs.dispatch import enqueue_dispatch
from ..models.delivery import CHANNELS
from ..services.record_store import RecordStore

bp = Blueprint("deliveries", __name__)


@bp.get("/api/deliveries/<int:delivery_id>")
def get_delivery(delivery_id):
    d = RecordStore().get_delivery(delivery_id)
    if d is None:
        return jsonify({"error": "Notification not found"}), 404
    return jsonify(d.to_dict(with_submission=True))


@bp.patch("/api/deliveries/<int:delivery_id>/read")
def mark_delivery_read(delivery_id):
    data = request.get_json(silent=True) or {}
    d = RecordStore().mark_read(delivery_id, reviewer_id=data.get("reviewer_id"))
    if d is None:
        return jsonify({"error": "Notification not found"}), 404
    return jsonify({"message": "Notification marked as read", "read_at": d.read_at.isoformat()})


@bp.post("/api/deliveries/<int:delivery_id>/send")
def send_delivery(delivery_id):
    """(Re)send a delivery over SMS and/or email in the background."""
    data = request.get_json(silent=True) or {}
    channel = data.get("channel")
    if channel is not None and channel not in CHANNELS:
        return jsonify({"error": f"channel must be one of {', '.join(CHANNELS)}"}), 400
    if RecordStore().get_delivery(delivery_id) is None:
        return jsonify({"error": "Notification not found"}), 404
    handle = enqueue_dispatch(delivery_id, channel)
    if handle is None:
        return jsonify({"error": "Dispatch already queued"}), 409
    return jsonify({"job": handle.to_dict()}), 202
