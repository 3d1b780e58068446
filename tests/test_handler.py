"""Tests for handler.py dispatch and payload parsing."""

import json
import threading
from urllib.parse import urlencode

import pytest

from conftest import FakeGateway, run_now
from handler import (
    PayloadError,
    handle_iad_command,
    handle_result_report,
    parse_result_payload,
    parse_slack_form,
    run_in_background,
)
from workflow import ProvisioningResult


class TestDispatch:

    def test_run_in_background_does_not_block(self):
        started = threading.Event()
        release = threading.Event()

        def slow():
            started.set()
            release.wait(5)

        run_in_background(slow)
        assert started.wait(5)
        release.set()

    def test_iad_dispatches_open_modal(self):
        gateway = FakeGateway()
        assert handle_iad_command({"trigger_id": "T1", "text": "new-service"}, gateway, run_now)
        assert gateway.calls[0][0] == "views.open"
        assert gateway.calls[0][1]["trigger_id"] == "T1"

    def test_iad_without_trigger(self):
        gateway = FakeGateway()
        assert not handle_iad_command({"text": ""}, gateway, run_now)
        assert gateway.calls == []

    def test_result_report(self):
        gateway = FakeGateway()
        handle_result_report(ProvisioningResult(True, True), gateway, "#ops", run_now)
        method, outbound = gateway.calls[0]
        assert method == "chat.postMessage"
        assert outbound["channel"] == "#ops"


class TestParsing:

    def test_parse_slack_form(self):
        params = parse_slack_form("text=hello+world&trigger_id=1.2.3&response_url=https%3A%2F%2Fx")
        assert params == {"text": "hello world", "trigger_id": "1.2.3", "response_url": "https://x"}

    def test_parse_slack_form_ignores_bare_keys(self):
        assert parse_slack_form("flag&a=1") == {"a": "1"}

    def test_json_body(self):
        body = json.dumps({"gitRepoCreated": True, "jenkinsPipelineCreated": True}).encode()
        result = parse_result_payload(body, "application/json; charset=utf-8")
        assert result.succeeded

    def test_form_payload_field(self):
        body = urlencode({"payload": json.dumps({"error": "E", "message": "M"})}).encode()
        result = parse_result_payload(body, "application/x-www-form-urlencoded")
        assert result == ProvisioningResult(False, False, "E", "M")

    def test_flat_form(self):
        body = urlencode({"gitRepoCreated": "true", "jenkinsPipelineCreated": "false"}).encode()
        result = parse_result_payload(body, "application/x-www-form-urlencoded")
        assert result.git_repo_created and not result.jenkins_pipeline_created

    @pytest.mark.parametrize("content_type", ["text/plain", "", "application/x-www-form-urlencoded"])
    def test_json_body_without_json_content_type(self, content_type):
        body = b'{"gitRepoCreated": true, "jenkinsPipelineCreated": true}'
        assert parse_result_payload(body, content_type).succeeded

    @pytest.mark.parametrize("body", [b"", b"foo=bar&user_id=U1", b"just some text"])
    def test_form_without_result_fields(self, body):
        with pytest.raises(PayloadError):
            parse_result_payload(body, "application/x-www-form-urlencoded")

    def test_form_with_only_error_fields(self):
        body = urlencode({"error": "AwsError", "message": "bad credentials"}).encode()
        result = parse_result_payload(body, "application/x-www-form-urlencoded")
        assert result == ProvisioningResult(False, False, "AwsError", "bad credentials")

    @pytest.mark.parametrize("body", [b"", b"{oops", b"[1, 2]"])
    def test_bad_json(self, body):
        with pytest.raises(PayloadError):
            parse_result_payload(body, "application/json")
