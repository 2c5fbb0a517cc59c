from flask import Blueprint, current_app, jsonify, request

from ..errors import DuplicateRunError
from ..extensions import job_runner
from ..jobs.pipeline import start_pipeline
from ..services.record_store import SORTS, RecordStore
from ..services.storage import is_allowed_audio, save_audio

bp = Blueprint("submissions", __name__)


def _sort_arg():
    sort = request.args.get("sortBy") or request.args.get("sort") or "newest"
    return sort if sort in SORTS else "newest"


@bp.post("/api/submissions")
def create_submission():
    """Accept an audio report and start its pipeline without waiting for it."""
    f = request.files.get("audio")
    if f is None or not f.filename:
        return jsonify({"error": "audio file is required"}), 400
    if not is_allowed_audio(f.mimetype):
        return jsonify({"error": "Only audio files are allowed"}), 415
    responder_id = request.form.get("responder_id", type=int)
    if responder_id is None:
        return jsonify({"error": "responder_id is required"}), 400

    store = RecordStore()
    responder = store.get_user(responder_id)
    if responder is None or responder.role != "responder":
        return jsonify({"error": "Responder not found"}), 404

    context = request.form.get("context") or request.form.get("patient_info") or ""
    audio_url = save_audio(f, prefix=f"responder{responder_id}")
    sub = store.create(responder_id, context, audio_url)
    # snapshot before the run starts; the sync backend finishes it inline
    payload = sub.to_dict()
    handle = start_pipeline(sub.id, audio_url)
    payload["job_id"] = handle.id
    current_app.logger.info("Submission %s uploaded by responder %s", sub.id, responder_id)
    return jsonify({
        "message": "Recording uploaded successfully",
        "submission": payload,
        "job": handle.to_dict(),
    }), 201


@bp.get("/api/submissions/<int:submission_id>")
def get_submission(submission_id):
    sub = RecordStore().get(submission_id)
    if sub is None:
        return jsonify({"error": "Recording not found"}), 404
    return jsonify(sub.to_dict())


@bp.get("/api/submissions/<int:submission_id>/job")
def get_submission_job(submission_id):
    sub = RecordStore().get(submission_id)
    if sub is None:
        return jsonify({"error": "Recording not found"}), 404
    return jsonify({
        "submission_id": sub.id,
        "submission_status": sub.status,
        "job_id": sub.job_id,
        "job_status": job_runner.status(sub.job_id) if sub.job_id else None,
    })


@bp.post("/api/submissions/<int:submission_id>/process")
def process_submission_again(submission_id):
    """Re-submit the pipeline job for a submission still pending (e.g. lost enqueue)."""
    sub = RecordStore().get(submission_id)
    if sub is None:
        return jsonify({"error": "Recording not found"}), 404
    if sub.status != "pending":
        return jsonify({"error": "Recording is not pending", "status": sub.status}), 409
    try:
        handle = start_pipeline(sub.id, sub.audio_url)
    except DuplicateRunError as e:
        return jsonify({"error": "Pipeline already queued or running", "job_id": e.job_id}), 409
    return jsonify({"job": handle.to_dict()}), 202


@bp.get("/api/responders/<int:responder_id>/submissions")
def list_responder_submissions(responder_id):
    items = RecordStore().list_by_owner(responder_id, sort=_sort_arg())
    return jsonify([s.to_dict() for s in items])


@bp.post("/api/submissions/<int:submission_id>/respond")
def respond_to_submission(submission_id):
    data = request.get_json(silent=True) or {}
    reviewer_id = data.get("reviewer_id")
    response = data.get("response")
    if not isinstance(reviewer_id, int) or not isinstance(response, str):
        return jsonify({"error": "reviewer_id (int) and response (string) are required"}), 400
    d = RecordStore().record_response(submission_id, reviewer_id, response)
    if d is None:
        return jsonify({"error": "No delivery for this reviewer and recording"}), 404
    return jsonify({"message": "Response recorded successfully", "delivery": d.to_dict()})
