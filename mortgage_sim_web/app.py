"""Flask JSON API for the mortgage simulator.

Exposes the defaults, a calculate endpoint, per-session saved settings and
saved comparison scenarios. Each browser session gets a user token, and its
settings and scenarios are persisted through ``ScenarioStore``.
"""

import logging
import os
from uuid import uuid4

from flask import Blueprint, Flask, current_app, jsonify, request, session

from mortgage_sim.engine import calculate
from mortgage_sim.export import result_to_dict
from mortgage_sim.settings import DEFAULT_SETTINGS, SettingsError, config_from_settings, merge_settings
from mortgage_sim_web.scenario_store import ScenarioStore, create_store_from_env

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


def _store() -> ScenarioStore:
    return current_app.config["SCENARIO_STORE"]


def _ensure_user_token() -> str:
    token = session.get("user_token")
    if not token:
        token = uuid4().hex
        session["user_token"] = token
        session.modified = True
    return token


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise SettingsError("body", "expected a JSON object")
    return data


def _run_analysis(settings: dict) -> dict:
    merged = merge_settings(settings)
    result = calculate(config_from_settings(merged))
    return result_to_dict(result)


@api.errorhandler(SettingsError)
def _settings_error(exc: SettingsError):
    logger.warning("Rejected settings: %s", exc)
    return jsonify({"error": str(exc), "key": exc.key}), 400


@api.get("/defaults")
def defaults():
    return jsonify(DEFAULT_SETTINGS)


@api.post("/calculate")
def run_calculation():
    return jsonify(_run_analysis(_payload()))


@api.get("/settings")
def load_settings():
    saved = _store().load_settings(_ensure_user_token())
    return jsonify(merge_settings(saved))


@api.put("/settings")
def save_settings():
    settings = merge_settings(_payload())
    # Invalid settings are rejected before they are stored
    config_from_settings(settings)
    _store().save_settings(_ensure_user_token(), settings)
    return jsonify(settings)


@api.delete("/settings")
def reset_settings():
    _store().reset_settings(_ensure_user_token())
    return jsonify(DEFAULT_SETTINGS)


@api.get("/scenarios")
def list_scenarios():
    return jsonify(_store().list_scenarios(_ensure_user_token()))


@api.post("/scenarios")
def add_scenario():
    data = _payload()
    name = str(data.get("name", "")).strip() or "Scenario"
    settings = merge_settings(data.get("settings") or {})
    summary = _run_analysis(settings)["summary"]
    scenario_id = uuid4().hex
    _store().add_scenario(_ensure_user_token(), scenario_id, name, settings, summary)
    return jsonify({"id": scenario_id, "name": name, "summary": summary}), 201


@api.delete("/scenarios/<scenario_id>")
def remove_scenario(scenario_id: str):
    if not _store().remove_scenario(session.get("user_token"), scenario_id):
        return jsonify({"error": "scenario not found"}), 404
    return "", 204


@api.post("/scenarios/clear")
def clear_scenarios():
    _store().clear_scenarios(session.get("user_token"))
    return "", 204


def create_app(store: ScenarioStore | None = None) -> Flask:
    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    if store is None:
        store = create_store_from_env(
            os.environ.get("SCENARIO_DATABASE_URL"),
            max_per_user=int(os.environ.get("SCENARIO_MAX_PER_USER", "10")),
        )
    app.config["SCENARIO_STORE"] = store
    app.register_blueprint(api)
    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print("Starting Mortgage Simulator API...")
    create_app().run(host="0.0.0.0", port=8710, debug=True)
