import logging
from dataclasses import asdict

from flask import Flask, jsonify, request

from common.errors import UnknownFarmError
from common.models import Actuator
from executor.executor_service import status_payload

logger = logging.getLogger("Dashboard")


def _control_payload(farm_id, state) -> dict:
    payload = state.to_dict()
    payload["farm_id"] = farm_id
    return payload


def create_app(service) -> Flask:
    app = Flask(__name__)

    @app.errorhandler(UnknownFarmError)
    def unknown_farm(e):
        return jsonify({"error": str(e)}), 404

    @app.route("/farms", methods=["GET"])
    def get_farms():
        controls = service.store.snapshot_all()
        farms = []
        for item in service.farm_snapshot():
            data = status_payload(item)
            state = controls.get(item.farm.id)
            data["fan_count"] = item.farm.fan_count
            data["controls"] = state.to_dict() if state is not None else None
            farms.append(data)
        return jsonify(farms)

    @app.route("/alerts", methods=["GET"])
    def get_alerts():
        return jsonify(service.alerts().to_dict())

    @app.route("/overview", methods=["GET"])
    def get_overview():
        data = asdict(service.overview())
        data["busy"] = service.orchestrator.busy
        data["auto_refresh"] = service.orchestrator.auto_refresh_enabled
        return jsonify(data)

    @app.route("/farms/<int:farm_id>/controls", methods=["GET"])
    def get_controls(farm_id):
        return jsonify(_control_payload(farm_id, service.get_control_state(farm_id)))

    @app.route("/farms/<int:farm_id>/controls/<actuator>/toggle", methods=["POST"])
    def toggle(farm_id, actuator):
        try:
            kind = Actuator(actuator)
        except ValueError:
            return jsonify({"error": f"Unknown actuator: {actuator}"}), 400
        state = service.toggle(farm_id, kind)
        return jsonify(_control_payload(farm_id, state))

    @app.route("/farms/<int:farm_id>/controls/fan/frequency", methods=["PUT"])
    def set_frequency(farm_id):
        body = request.get_json(silent=True) or {}
        hz = body.get("hz")
        if isinstance(hz, bool) or not isinstance(hz, (int, float, str)):
            return jsonify({"error": "Body must contain a numeric 'hz'"}), 400
        try:
            state = service.set_fan_frequency(farm_id, hz)
        except ValueError:
            return jsonify({"error": f"Invalid frequency: {hz!r}"}), 400
        return jsonify(_control_payload(farm_id, state))

    @app.route("/refresh", methods=["POST"])
    def refresh():
        if not service.refresh_now():
            logger.info("Manual refresh rejected, a cycle is in flight")
            return jsonify({"refreshed": False, "busy": True}), 409
        return jsonify({"refreshed": True, "busy": False})

    @app.route("/auto-refresh", methods=["PUT"])
    def auto_refresh():
        body = request.get_json(silent=True) or {}
        enabled = body.get("enabled")
        if not isinstance(enabled, bool):
            return jsonify({"error": "Body must contain a boolean 'enabled'"}), 400
        service.set_auto_refresh(enabled)
        return jsonify({"auto_refresh": service.orchestrator.auto_refresh_enabled})

    return app
