"""Tests for the pairing code exchange."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from onboarding.errors import ExhaustedAttempts, MalformedConfig
from onboarding.pairing import ConfigExchange, normalize_code, parse_config

EXCHANGE_URL = "https://api.vectorplane.io/api/v1/onboarding/azure/pairing-exchange"

VALID_CONFIG = {
    "external_id": "ext-abc",
    "subscription_id": "sub-123",
    "callback_secret": "s3cret",
}


class ScriptedPrompt:
    """Returns queued codes in order and counts prompts."""

    def __init__(self, *codes: str) -> None:
        self.codes = list(codes)
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return self.codes.pop(0)


def make_exchange(
    client: httpx.Client, prompt: ScriptedPrompt, lines: list[str]
) -> ConfigExchange:
    return ConfigExchange(EXCHANGE_URL, client, prompt, echo=lines.append)


class TestNormalizeCode:
    def test_strips_and_uppercases(self) -> None:
        assert normalize_code("  vp-7k2q \n") == "VP-7K2Q"


class TestParseConfig:
    def test_valid(self) -> None:
        config = parse_config(json.dumps(VALID_CONFIG))
        assert config.external_id == "ext-abc"

    def test_not_json(self) -> None:
        with pytest.raises(MalformedConfig):
            parse_config("<html>Bad Gateway</html>")

    def test_not_an_object(self) -> None:
        with pytest.raises(MalformedConfig):
            parse_config("[1, 2]")

    def test_missing_external_id(self) -> None:
        with pytest.raises(MalformedConfig):
            parse_config(json.dumps({"subscription_id": "sub-123"}))

    @pytest.mark.parametrize("scope", ["MANAGEMENT_GROUP", "SUBSCRIPTION"])
    def test_scope_ids_not_required(self, scope: str) -> None:
        """Test that only external_id decides whether a body is usable."""
        config = parse_config(json.dumps({"external_id": "sess-1", "onboarding_scope": scope}))

        assert config.external_id == "sess-1"
        assert config.onboarding_scope.value == scope


class TestConfigExchange:
    """Tests for the bounded attempt loop."""

    @respx.mock
    def test_first_code_succeeds(self) -> None:
        route = respx.post(EXCHANGE_URL).mock(
            return_value=httpx.Response(200, json=VALID_CONFIG)
        )
        prompt = ScriptedPrompt()
        lines: list[str] = []

        with httpx.Client() as client:
            config = make_exchange(client, prompt, lines).exchange(" vp-7k2q ")

        assert config.external_id == "ext-abc"
        assert prompt.count == 0
        assert json.loads(route.calls.last.request.content) == {"pairing_code": "VP-7K2Q"}

    @respx.mock
    def test_prompts_when_no_code_given(self) -> None:
        respx.post(EXCHANGE_URL).mock(return_value=httpx.Response(200, json=VALID_CONFIG))
        prompt = ScriptedPrompt("VP-AAAA")

        with httpx.Client() as client:
            make_exchange(client, prompt, []).exchange()

        assert prompt.count == 1

    @respx.mock
    def test_invalid_then_valid(self) -> None:
        """Test that a rejected code re-prompts instead of resubmitting."""
        route = respx.post(EXCHANGE_URL).mock(
            side_effect=[
                httpx.Response(400, json={"detail": "Invalid or expired code"}),
                httpx.Response(200, json=VALID_CONFIG),
            ]
        )
        prompt = ScriptedPrompt("VP-BBBB")
        lines: list[str] = []

        with httpx.Client() as client:
            config = make_exchange(client, prompt, lines).exchange("VP-AAAA")

        assert config.external_id == "ext-abc"
        assert route.call_count == 2
        submitted = [json.loads(c.request.content)["pairing_code"] for c in route.calls]
        assert submitted == ["VP-AAAA", "VP-BBBB"]
        assert "Error: Invalid or expired code" in lines

    @respx.mock
    def test_superseded_code_message(self) -> None:
        respx.post(EXCHANGE_URL).mock(
            side_effect=[
                httpx.Response(410, json={"detail": "Code superseded"}),
                httpx.Response(200, json=VALID_CONFIG),
            ]
        )
        lines: list[str] = []

        with httpx.Client() as client:
            make_exchange(client, ScriptedPrompt("VP-NEW1"), lines).exchange("VP-OLD1")

        assert "A newer code was generated. Check your VectorPlane dashboard." in lines

    @respx.mock
    def test_three_failures_exhaust(self) -> None:
        """Test that at most three exchanges are attempted."""
        route = respx.post(EXCHANGE_URL).mock(
            return_value=httpx.Response(401, text="expired")
        )
        prompt = ScriptedPrompt("VP-2", "VP-3", "VP-4")

        with httpx.Client() as client:
            with pytest.raises(ExhaustedAttempts) as exc_info:
                make_exchange(client, prompt, []).exchange("VP-1")

        assert route.call_count == 3
        assert prompt.count == 2
        assert "regenerate a code" in exc_info.value.message

    @respx.mock(assert_all_called=False)
    def test_empty_code_consumes_an_attempt(self, respx_mock: respx.MockRouter) -> None:
        route = respx_mock.post(EXCHANGE_URL).mock(
            return_value=httpx.Response(200, json=VALID_CONFIG)
        )
        prompt = ScriptedPrompt("", "   ", "")
        lines: list[str] = []

        with httpx.Client() as client:
            with pytest.raises(ExhaustedAttempts):
                make_exchange(client, prompt, lines).exchange()

        assert not route.called
        assert lines.count("No code entered.") == 3

    @respx.mock
    def test_transport_failure_counts_as_invalid(self) -> None:
        respx.post(EXCHANGE_URL).mock(
            side_effect=[httpx.ConnectError("dns"), httpx.Response(200, json=VALID_CONFIG)]
        )

        with httpx.Client() as client:
            config = make_exchange(client, ScriptedPrompt("VP-2"), []).exchange("VP-1")

        assert config.external_id == "ext-abc"

    @respx.mock
    def test_malformed_config_is_fatal(self) -> None:
        """Test that a 2xx with a bad body is not retried."""
        route = respx.post(EXCHANGE_URL).mock(
            return_value=httpx.Response(200, text="not json")
        )
        prompt = ScriptedPrompt("VP-2", "VP-3")

        with httpx.Client() as client:
            with pytest.raises(MalformedConfig):
                make_exchange(client, prompt, []).exchange("VP-1")

        assert route.call_count == 1
        assert prompt.count == 0

    @respx.mock
    def test_missing_external_id_is_fatal(self) -> None:
        respx.post(EXCHANGE_URL).mock(
            return_value=httpx.Response(200, json={"subscription_id": "sub-123"})
        )

        with httpx.Client() as client:
            with pytest.raises(MalformedConfig):
                make_exchange(client, ScriptedPrompt(), []).exchange("VP-1")

    @respx.mock
    def test_management_group_without_group_id_accepted(self) -> None:
        respx.post(EXCHANGE_URL).mock(
            return_value=httpx.Response(
                200, json={"external_id": "sess-1", "onboarding_scope": "MANAGEMENT_GROUP"}
            )
        )

        with httpx.Client() as client:
            config = make_exchange(client, ScriptedPrompt(), []).exchange("vp-7k2q")

        assert config.external_id == "sess-1"
        assert config.management_group_id == ""
