# Standard library imports
import logging
import os
import typing

# Third-party imports
import dotenv
import flask
import flask_cors
import werkzeug.exceptions

from config import Settings, load_settings
from errors import LedgerError
from json_file_handler import JsonFileHandler
from ledger import Ledger
from tracking_generator import build_share_path

logger = logging.getLogger(__name__)

bp = flask.Blueprint("tracking", __name__)


def get_ledger() -> Ledger:
    return flask.current_app.extensions["ledger"]


def request_body() -> typing.Dict:
    data = flask.request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def base_url() -> str:
    """Scheme and host the client used to reach us, honouring X-Forwarded-Proto."""
    proto = flask.request.headers.get("X-Forwarded-Proto") or flask.request.scheme
    proto = proto.split(",")[0].strip()
    return f"{proto}://{flask.request.host}"


@bp.route("/health", methods=["GET"])
def api_health() -> typing.Tuple[flask.Response, int]:
    return flask.jsonify(ok=True, records=get_ledger().count()), 200


@bp.route("/api/create", methods=["POST"])
def api_create() -> typing.Tuple[flask.Response, int]:
    data = request_body()
    code, updates = get_ledger().create(data.get("pin"), data.get("initialText"))
    return flask.jsonify(code=code, updates=updates), 200


@bp.route("/api/add", methods=["POST"])
def api_add() -> typing.Tuple[flask.Response, int]:
    data = request_body()
    updates = get_ledger().append_update(data.get("pin"), data.get("code"), data.get("text"))
    return flask.jsonify(ok=True, updates=updates), 200


@bp.route("/api/track/<code>", methods=["GET"])
def api_track(code: str) -> typing.Tuple[flask.Response, int]:
    updates = get_ledger().get_history(code)
    return flask.jsonify(code=code, updates=updates), 200


@bp.route("/api/share-link", methods=["GET"])
def api_share_link() -> typing.Tuple[flask.Response, int]:
    code = flask.request.args.get("code", "")
    token = get_ledger().issue_link(code)
    relative = build_share_path(code, token)
    return flask.jsonify(url=relative, fullUrl=f"{base_url()}{relative}", token=token), 200


@bp.route("/api/shared", methods=["GET"])
def api_shared() -> typing.Tuple[flask.Response, int]:
    code = flask.request.args.get("trackingcode", "")
    token = flask.request.args.get("token", "")
    updates = get_ledger().redeem_link(code, token)
    return flask.jsonify(code=code, updates=updates), 200


def register_error_handlers(app: flask.Flask) -> None:
    @app.errorhandler(LedgerError)
    def _ledger_error(e: LedgerError):
        return flask.jsonify(error=e.message), e.status_code

    @app.errorhandler(404)
    @app.errorhandler(405)
    def _not_found(e):
        return flask.jsonify(error="Not found"), 404

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        if isinstance(e, werkzeug.exceptions.HTTPException):
            return flask.jsonify(error=e.description), e.code
        app.logger.exception("[!] Unhandled error on %s %s", flask.request.method, flask.request.path)
        return flask.jsonify(error="Internal server error"), 500


def build_ledger(settings: Settings) -> Ledger:
    os.makedirs(settings.data_dir, exist_ok=True)
    return Ledger(
        pin=settings.pin,
        records=JsonFileHandler(settings.records_path),
        tokens=JsonFileHandler(settings.tokens_path),
        location=settings.location_label,
    )


def create_app(
    settings: typing.Optional[Settings] = None,
    ledger: typing.Optional[Ledger] = None,
) -> flask.Flask:
    """
    Build the tracking API.

    Parameters:
    settings (Settings, optional): Configuration. Read from the environment (and .env) when omitted.
    ledger (Ledger, optional): A ready ledger, e.g. one backed by MemoryStorage. Built from `settings` when omitted.

    Raises:
    RuntimeError: If no PIN is configured.
    """
    if settings is None:
        dotenv.load_dotenv()
        settings = load_settings()
    if ledger is None:
        if not settings.pin:
            raise RuntimeError("PIN must be set; refusing to start without a shared secret.")
        ledger = build_ledger(settings)

    app = flask.Flask(__name__)
    app.config["SETTINGS"] = settings
    app.extensions["ledger"] = ledger

    if "*" in settings.cors_origins:
        flask_cors.CORS(app, origins="*", send_wildcard=True)
    else:
        flask_cors.CORS(app, origins=list(settings.cors_origins))

    app.register_blueprint(bp)
    register_error_handlers(app)
    app.logger.info("[+] Tracking API ready. Data files: %s, %s", settings.records_path, settings.tokens_path)
    return app


def main() -> None:
    dotenv.load_dotenv()
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings)
    logger.info("[*] Starting server on %s:%d...", settings.host, settings.port)
    app.run(host=settings.host, port=settings.port)


if __name__ == '__main__':
    main()
