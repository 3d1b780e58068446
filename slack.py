"""
Slack utilities: request verification, view/message payloads, Web API calls.
"""

import hashlib
import hmac
import json
import logging
import math
import time
from typing import Any, Callable, Optional

import requests

from config import Config
from workflow import ProvisioningResult

logger = logging.getLogger(__name__)

SIGNATURE_VERSION = "v0"
TIMESTAMP_TOLERANCE = 60 * 5

AWS_REGIONS = [
    "US West (Northern California) Region",
    "US East (Ohio) Region",
    "US West (Oregon) Region",
]


def compute_signature(body: bytes, timestamp: str, signing_secret: str) -> str:
    """Slack v0 signature: "v0=" + hex HMAC-SHA256 of "v0:{timestamp}:{body}"."""
    base = b":".join([SIGNATURE_VERSION.encode(), timestamp.encode(), body])
    digest = hmac.new(signing_secret.encode(), base, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_slack_request(
    body: bytes,
    timestamp: Optional[str],
    signature: Optional[str],
    signing_secret: Optional[str],
    now: Optional[float] = None,
    tolerance: int = TIMESTAMP_TOLERANCE,
) -> bool:
    """
    Verify that a request came from Slack using the signing secret.
    See: https://api.slack.com/authentication/verifying-requests-from-slack

    `body` must be the raw request bytes, untouched by form/JSON parsing.
    Stale timestamps are rejected so captured requests cannot be replayed.
    """
    if not signing_secret or not timestamp or not signature:
        return False
    try:
        ts = int(timestamp)
    except ValueError:
        return False
    now = time.time() if now is None else now
    if abs(now - ts) > tolerance:
        return False

    computed = compute_signature(body, timestamp, signing_secret)
    return hmac.compare_digest(computed.encode(), signature.encode("utf-8"))


def _plain_text(text: str, emoji: Optional[bool] = None) -> dict:
    obj: dict[str, Any] = {"type": "plain_text", "text": text}
    if emoji is not None:
        obj["emoji"] = emoji
    return obj


def _text_input(action_id: str, label: str, placeholder: str) -> dict:
    return {
        "type": "input",
        "element": {
            "type": "plain_text_input",
            "action_id": action_id,
            "placeholder": _plain_text(placeholder),
        },
        "label": _plain_text(label),
    }


def build_dialog(trigger_id: str) -> dict:
    """Modal asking for AWS credentials, region and the Lucid authorization code."""
    region_block = {
        "type": "input",
        "element": {
            "type": "radio_buttons",
            "options": [{"text": _plain_text(r, emoji=True), "value": r} for r in AWS_REGIONS],
            "action_id": "radio_buttons-action",
        },
        "label": _plain_text("AWS Region", emoji=True),
    }
    view = {
        "type": "modal",
        "title": _plain_text("Infrastructure as Design", emoji=True),
        "submit": _plain_text("Submit", emoji=True),
        "close": _plain_text("Cancel", emoji=True),
        "blocks": [
            _text_input("aws_accesskeyid", "AWS AccessKeyId", "Please enter AWS AccessKeyId"),
            _text_input("aws_secretkey", "AWS SecretKey", "Please enter AWS SecretKey"),
            region_block,
            _text_input(
                "lucid_auth_code",
                "AUTHORIZATION CODE of Lucid",
                "Please enter your AUTHORIZATION CODE of Lucid",
            ),
        ],
    }
    return {"trigger_id": trigger_id, "view": view}


def format_result(result: ProvisioningResult, channel: str) -> dict:
    """Channel message for a provisioning result: success only if every step succeeded."""
    if result.succeeded:
        text = "*SUCCESS* \nA new infrastructure has been created successfully!"
    else:
        text = f"*ERROR* \nFailed to create infrastructure!\n{result.error}: {result.message}"
    return {
        "channel": channel,
        "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": text}}],
    }


class SlackGateway:
    """
    Form-encoded calls to the Slack Web API.

    Delivery failures are logged and reported as False, never raised: the
    inbound webhook has already been acknowledged by the time these run.
    """

    def __init__(
        self,
        config: Config,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.sleep = sleep

    def open_modal(self, dialog: dict) -> bool:
        return self._call("views.open", {
            "trigger_id": dialog["trigger_id"],
            "view": json.dumps(dialog["view"]),
        })

    def post_message(self, outbound: dict) -> bool:
        return self._call("chat.postMessage", {
            "channel": outbound["channel"],
            "blocks": json.dumps(outbound["blocks"]),
        })

    def _call(self, method: str, data: dict[str, str]) -> bool:
        url = f"{self.config.slack_api_url}/{method}"
        form = {"token": self.config.slack_access_token, **data}
        retries = self.config.max_retries

        for attempt in range(retries + 1):
            try:
                r = self.session.post(url, data=form, timeout=self.config.request_timeout)
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt >= retries:
                    logger.error("%s call failed after %d attempts: %s", method, attempt + 1, e)
                    return False
                self._backoff(method, attempt)
                continue
            except requests.RequestException as e:
                logger.error("%s call failed: %s", method, e)
                return False

            if r.status_code == 429 or r.status_code >= 500:
                if attempt >= retries:
                    logger.error("%s call failed after %d attempts: HTTP %d", method, attempt + 1, r.status_code)
                    return False
                self._backoff(method, attempt, r.headers.get("Retry-After"))
                continue
            if not 200 <= r.status_code < 300:
                logger.error("%s call failed: HTTP %d", method, r.status_code)
                return False
            return self._check_ok(method, r)

        return False

    def _check_ok(self, method: str, r: requests.Response) -> bool:
        # The Web API answers 200 even for rejected calls; the verdict is in the body.
        try:
            body = r.json()
        except ValueError:
            logger.error("%s returned a non-JSON body", method)
            return False
        if not isinstance(body, dict) or not body.get("ok"):
            error = body.get("error") if isinstance(body, dict) else None
            logger.error("%s rejected by Slack: %s", method, error or "unknown error")
            return False
        logger.debug("%s succeeded", method)
        return True

    def _backoff(self, method: str, attempt: int, retry_after: Optional[str] = None) -> None:
        delay = min(self.config.backoff_base * 2 ** attempt, self.config.backoff_max)
        hinted = _parse_retry_after(retry_after)
        if hinted is not None:
            delay = min(hinted, self.config.backoff_max)
        logger.warning("%s attempt %d failed, retrying in %.1fs", method, attempt + 1, delay)
        self.sleep(delay)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a Retry-After header. HTTP-dates and NaN/inf are ignored, negatives clamp to 0."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    if not math.isfinite(seconds):
        return None
    return max(0.0, seconds)
