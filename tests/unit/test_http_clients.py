# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the usage server and speech token HTTP clients."""

import json
from collections.abc import Callable

import httpx
import pytest
from pydantic import SecretStr

from src.core.config.settings import UsageServerSettings, VoiceSettings
from src.infrastructure.speech_token.client import SpeechCredentials, SpeechTokenClient
from src.infrastructure.usage_server.client import UsageServerClient, UsageServerError

SERVER_URL = "https://usage.example.test/rpc"
TOKEN_URL = "https://speech.example.test/token"

Handler = Callable[[httpx.Request], httpx.Response]


def mock_client(handler: Handler) -> httpx.AsyncClient:
    """Build an httpx client answering through handler."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class Recorder:
    """Handler recording request bodies and replying with a fixed response."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.bodies: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        return self.response


def usage_client(handler: Handler, url: str = SERVER_URL) -> UsageServerClient:
    return UsageServerClient(UsageServerSettings(url=url), client=mock_client(handler))


# =============================================================================
# Usage server
# =============================================================================


class TestUsageServerClient:
    """Tests for UsageServerClient."""

    @pytest.mark.asyncio
    async def test_log_event_ok(self) -> None:
        """Test a successful log call posts the action and event."""
        recorder = Recorder(httpx.Response(200, json={"ok": True}))
        client = usage_client(recorder)

        result = await client.log_event({"feature": "homework_help", "count": 1})

        assert result.ok is True
        assert recorder.bodies == [
            {"action": "log", "event": {"feature": "homework_help", "count": 1}}
        ]

    @pytest.mark.asyncio
    async def test_error_field_fails_write(self) -> None:
        """Test an error in the body is a failed result, not an exception."""
        client = usage_client(Recorder(httpx.Response(200, json={"error": "quota store offline"})))

        result = await client.log_event({"feature": "homework_help"})

        assert result.ok is False
        assert result.error == "quota store offline"

    @pytest.mark.asyncio
    async def test_server_error_status(self) -> None:
        """Test non-2xx responses raise with the status code."""
        client = usage_client(Recorder(httpx.Response(500, text="boom")))

        with pytest.raises(UsageServerError) as exc_info:
            await client.call("limits", user_id="u1")

        assert exc_info.value.status_code == 500
        assert exc_info.value.action == "limits"

    @pytest.mark.asyncio
    async def test_invalid_json_reads_as_none(self) -> None:
        """Test an undecodable body makes reads return None."""
        client = usage_client(Recorder(httpx.Response(200, text="<html>")))

        assert await client.get_usage("u1") is None

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        """Test connection failures are reported as failed writes."""

        def unreachable(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = await usage_client(unreachable).log_event({})

        assert result.ok is False
        assert "unreachable" in (result.error or "")

    @pytest.mark.asyncio
    async def test_disabled_client_makes_no_requests(self) -> None:
        """Test an unconfigured client fails fast without I/O."""
        recorder = Recorder(httpx.Response(200, json={}))
        client = usage_client(recorder, url="")

        assert client.enabled is False
        assert await client.get_limits("u1") is None
        assert (await client.log_event({})).ok is False
        assert recorder.bodies == []

    @pytest.mark.asyncio
    async def test_organization_actions_send_preschool_id(self) -> None:
        """Test organization ids travel as preschool_id."""
        recorder = Recorder(httpx.Response(200, json={"quotas": {"homework_help": 500}}))
        client = usage_client(recorder)

        limits = await client.get_org_limits("school-1")
        await client.set_allocation("school-1", "teacher-1", {"homework_help": 25})

        assert limits == {"quotas": {"homework_help": 500}}
        assert recorder.bodies[0] == {"action": "org_limits", "preschool_id": "school-1"}
        assert recorder.bodies[1] == {
            "action": "set_allocation",
            "preschool_id": "school-1",
            "user_id": "teacher-1",
            "quotas": {"homework_help": 25},
        }

    @pytest.mark.asyncio
    async def test_non_object_body_is_rejected(self) -> None:
        """Test array bodies are treated as errors."""
        client = usage_client(Recorder(httpx.Response(200, json=[1, 2])))

        with pytest.raises(UsageServerError):
            await client.call("usage", user_id="u1")

    def test_auth_headers(self) -> None:
        """Test the bearer token is added only when set."""
        assert "Authorization" not in UsageServerSettings(url=SERVER_URL).auth_headers
        settings = UsageServerSettings(url=SERVER_URL, api_key=SecretStr("k"))

        assert settings.auth_headers["Authorization"] == "Bearer k"


# =============================================================================
# Speech token backend
# =============================================================================


def token_client(handler: Handler, url: str = TOKEN_URL) -> SpeechTokenClient:
    return SpeechTokenClient(VoiceSettings(token_url=url), client=mock_client(handler))


class TestSpeechTokenClient:
    """Tests for SpeechTokenClient."""

    @pytest.mark.asyncio
    async def test_token_and_region(self) -> None:
        """Test a complete answer yields credentials."""
        client = token_client(
            Recorder(httpx.Response(200, json={"token": "tok", "region": "southafricanorth"}))
        )

        assert await client.fetch() == SpeechCredentials(token="tok", region="southafricanorth")

    @pytest.mark.asyncio
    async def test_missing_region(self) -> None:
        """Test an answer without a region means unavailable."""
        client = token_client(Recorder(httpx.Response(200, json={"token": "tok"})))

        assert await client.fetch() is None

    @pytest.mark.asyncio
    async def test_unconfigured(self) -> None:
        """Test no endpoint means unavailable without a request."""
        recorder = Recorder(httpx.Response(200, json={"token": "tok", "region": "r"}))
        client = token_client(recorder, url="")

        assert client.configured is False
        assert await client.fetch() is None
        assert recorder.bodies == []

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        """Test error statuses mean unavailable."""
        client = token_client(Recorder(httpx.Response(503, json={"error": "down"})))

        assert await client.fetch() is None

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        """Test undecodable answers mean unavailable."""
        client = token_client(Recorder(httpx.Response(200, text="not json")))

        assert await client.fetch() is None
