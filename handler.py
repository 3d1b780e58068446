"""
Dispatch for the /iad and /interactive commands.

Uses the async pattern Slack requires: the endpoint returns 200 immediately,
the Web API call runs in a background thread.
"""

import json
import logging
import threading
from typing import Any, Callable
from urllib.parse import unquote_plus

from slack import SlackGateway, build_dialog, format_result
from workflow import ProvisioningResult

logger = logging.getLogger(__name__)

Dispatch = Callable[..., Any]

RESULT_KEYS = {"gitRepoCreated", "jenkinsPipelineCreated", "error", "message"}


class PayloadError(ValueError):
    """Result payload could not be decoded."""


def run_in_background(fn: Callable[..., Any], *args: Any) -> None:
    """Fire-and-forget: the caller never waits on or sees the outcome."""
    thread = threading.Thread(target=fn, args=args)
    thread.daemon = True
    thread.start()


def handle_iad_command(params: dict, gateway: SlackGateway, dispatch: Dispatch = run_in_background) -> bool:
    """
    Open the Infrastructure as Design modal for a /iad slash command.
    Returns whether a views.open call was dispatched.
    """
    trigger_id = params.get("trigger_id", "")
    if not trigger_id:
        logger.warning("/iad request without trigger_id, no modal opened")
        return False
    if params.get("text"):
        logger.debug("/iad text: %s", params["text"])

    dispatch(gateway.open_modal, build_dialog(trigger_id))
    return True


def handle_result_report(
    result: ProvisioningResult,
    gateway: SlackGateway,
    channel: str,
    dispatch: Dispatch = run_in_background,
) -> None:
    """Post the provisioning outcome to the report channel."""
    logger.info(
        "Reporting provisioning result to %s (success=%s)", channel, result.succeeded
    )
    dispatch(gateway.post_message, format_result(result, channel))


def parse_slack_form(body: str) -> dict:
    """Parse Slack form-urlencoded body."""
    params: dict[str, str] = {}
    for pair in body.split("&"):
        if "=" in pair:
            k, v = pair.split("=", 1)
            params[unquote_plus(k)] = unquote_plus(v)
    return params


def parse_result_payload(body: bytes, content_type: str) -> ProvisioningResult:
    """
    Decode a ProvisioningResult from a JSON body, a form field `payload`
    holding JSON, or flat form fields.

    A body that looks like a JSON object is decoded as JSON whatever the
    content type. A form body without any result key is rejected rather
    than reported as a failed run.
    """
    text = body.decode("utf-8", errors="replace")
    if content_type.startswith("application/json") or text.lstrip().startswith("{"):
        raw: Any = text
    else:
        params = parse_slack_form(text)
        if "payload" in params:
            raw = params["payload"]
        elif RESULT_KEYS & params.keys():
            return ProvisioningResult.from_payload(params)
        else:
            raise PayloadError("Result payload has no result fields")

    try:
        data = json.loads(raw)
    except ValueError as e:
        raise PayloadError(f"Result payload is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise PayloadError("Result payload must be a JSON object")
    return ProvisioningResult.from_payload(data)
