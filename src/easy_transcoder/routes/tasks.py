"""HTTP routes that drive the task processor."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Mapping

from flask import Blueprint, current_app, jsonify, request

from ..engine import (
    MetricError,
    ProfileNotFoundError,
    QueueFullError,
    ResolutionStateError,
    TaskNotFoundError,
)
from ..services import METRICS, TaskService, get_task_service
from ..utils import to_optional_bool, to_optional_str

LOGGER = logging.getLogger(__name__)

api_bp = Blueprint("transcoder_api", __name__)


def _service() -> TaskService:
    return get_task_service(current_app)


def _json_body() -> Mapping[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, Mapping) else {}


def _error(message: str, status: HTTPStatus):
    return jsonify({"error": message}), status


@api_bp.errorhandler(TaskNotFoundError)
def _task_not_found(exc: TaskNotFoundError):
    return _error(str(exc), HTTPStatus.NOT_FOUND)


@api_bp.errorhandler(ProfileNotFoundError)
def _profile_not_found(exc: ProfileNotFoundError):
    return _error(str(exc), HTTPStatus.BAD_REQUEST)


@api_bp.errorhandler(QueueFullError)
def _queue_full(exc: QueueFullError):
    return _error(str(exc), HTTPStatus.SERVICE_UNAVAILABLE)


@api_bp.errorhandler(ResolutionStateError)
def _wrong_state(exc: ResolutionStateError):
    return _error(str(exc), HTTPStatus.CONFLICT)


@api_bp.route("/health", methods=["GET"])
def health_endpoint():
    service = _service()
    payload = {
        "status": "ok",
        "service": "easy-transcoder",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "worker_running": service.processor.running(),
    }
    return jsonify(payload), HTTPStatus.OK


@api_bp.route("/profiles", methods=["GET"])
def profiles_endpoint():
    return jsonify({"profiles": _service().profiles()}), HTTPStatus.OK


@api_bp.route("/tasks", methods=["GET"])
def list_tasks_endpoint():
    return jsonify({"tasks": _service().list_tasks()}), HTTPStatus.OK


@api_bp.route("/tasks/<int:task_id>", methods=["GET"])
def task_endpoint(task_id: int):
    return jsonify(_service().task(task_id).to_dict()), HTTPStatus.OK


@api_bp.route("/tasks", methods=["POST"])
def submit_task_endpoint():
    body = _json_body()
    path = to_optional_str(body.get("path"))
    profile = to_optional_str(body.get("profile"))
    if not path or not profile:
        return _error("Both 'path' and 'profile' are required", HTTPStatus.BAD_REQUEST)
    task_id = _service().submit(path, profile)
    return jsonify({"task_id": task_id}), HTTPStatus.ACCEPTED


@api_bp.route("/tasks/batch", methods=["POST"])
def submit_batch_endpoint():
    body = _json_body()
    path = to_optional_str(body.get("path"))
    profile = to_optional_str(body.get("profile"))
    if not path or not profile:
        return _error("Both 'path' and 'profile' are required", HTTPStatus.BAD_REQUEST)
    try:
        _service().submit_batch(path, profile)
    except NotADirectoryError:
        return _error(f"Not a directory: {path}", HTTPStatus.BAD_REQUEST)
    return jsonify({"status": "accepted", "path": path, "profile": profile}), HTTPStatus.ACCEPTED


@api_bp.route("/tasks/<int:task_id>/cancel", methods=["POST"])
def cancel_task_endpoint(task_id: int):
    _service().cancel(task_id)
    return jsonify({"task_id": task_id, "status": "cancel_requested"}), HTTPStatus.ACCEPTED


@api_bp.route("/tasks/<int:task_id>/resolve", methods=["POST"])
def resolve_task_endpoint(task_id: int):
    replace = to_optional_bool(_json_body().get("replace"))
    if replace is None:
        return _error("'replace' must be a boolean", HTTPStatus.BAD_REQUEST)
    _service().resolve(task_id, replace)
    return jsonify({"task_id": task_id, "replace": replace}), HTTPStatus.ACCEPTED


@api_bp.route("/settings/auto-reject", methods=["GET"])
def auto_reject_settings_endpoint():
    return jsonify(_service().settings_payload()), HTTPStatus.OK


@api_bp.route("/settings/auto-reject", methods=["POST"])
def update_auto_reject_endpoint():
    enabled = to_optional_bool(_json_body().get("enabled"))
    if enabled is None:
        return _error("'enabled' must be a boolean", HTTPStatus.BAD_REQUEST)
    return jsonify(_service().set_auto_reject(enabled)), HTTPStatus.OK


@api_bp.route("/metrics/<string:metric>", methods=["GET"])
def metric_endpoint(metric: str):
    name = metric.lower()
    if name not in METRICS:
        return _error(f"Unknown metric: {metric}", HTTPStatus.BAD_REQUEST)
    reference = to_optional_str(request.args.get("reference"))
    distorted = to_optional_str(request.args.get("distorted"))
    if not reference or not distorted:
        return _error("Both 'reference' and 'distorted' are required", HTTPStatus.BAD_REQUEST)
    try:
        score = _service().metric(name, reference, distorted)
    except MetricError as exc:
        LOGGER.error("Failed to calculate %s: %s", name, exc)
        return _error(str(exc), HTTPStatus.BAD_GATEWAY)
    return jsonify({"metric": name, "score": score}), HTTPStatus.OK


__all__ = ["api_bp"]
