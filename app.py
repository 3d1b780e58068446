"""
Flask app for the Slack /iad slash command (Infra as Design).

Deploy to Railway, Render, Fly.io, or similar. Configuration comes from the
environment; see config.py.
"""

import logging
from typing import Optional

from flask import Flask, jsonify, request

from config import Config, load_config
from handler import (
    Dispatch,
    PayloadError,
    handle_iad_command,
    handle_result_report,
    parse_result_payload,
    parse_slack_form,
    run_in_background,
)
from slack import SlackGateway, verify_slack_request

logger = logging.getLogger(__name__)

HSTS = "max-age=31536000; includeSubDomains"


def create_app(
    config: Config,
    gateway: Optional[SlackGateway] = None,
    dispatch: Dispatch = run_in_background,
) -> Flask:
    """Build the Flask app; `dispatch` runs Slack API calls off the request path."""
    app = Flask(__name__)
    gateway = gateway or SlackGateway(config)

    def verified() -> bool:
        # get_data caches the raw bytes, so form/JSON parsing later sees the same body.
        body = request.get_data(cache=True)
        ok = verify_slack_request(
            body,
            request.headers.get("X-Slack-Request-Timestamp"),
            request.headers.get("X-Slack-Signature"),
            config.slack_signing_secret,
        )
        if not ok:
            logger.warning("Verification failed for %s", request.path)
        return ok

    @app.after_request
    def strict_transport_security(response):
        response.headers["Strict-Transport-Security"] = HSTS
        return response

    @app.route("/", methods=["GET"])
    def index():
        """Root route - confirms app is running."""
        return "The Infra as Design app is running", 200

    @app.route("/health", methods=["GET"])
    def health():
        """Health check for load balancers."""
        return jsonify({"status": "ok"}), 200

    @app.route("/iad", methods=["POST"])
    def iad_command():
        """Handle the /iad slash command: open the provisioning modal."""
        if not verified():
            return "", 404
        params = parse_slack_form(request.get_data().decode("utf-8", errors="replace"))
        handle_iad_command(params, gateway, dispatch)
        return "", 200

    @app.route("/interactive", methods=["POST"])
    def interactive():
        """Report a provisioning result in the configured Slack channel."""
        if not verified():
            return "", 404
        try:
            result = parse_result_payload(request.get_data(), request.content_type or "")
        except PayloadError as e:
            logger.warning("Rejected result report: %s", e)
            return "", 400
        handle_result_report(result, gateway, config.report_channel, dispatch)
        return "", 200

    return app


if __name__ == "__main__":
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = create_app(config)
    logger.info("Listening on port %d", config.port)
    app.run(host="0.0.0.0", port=config.port)
