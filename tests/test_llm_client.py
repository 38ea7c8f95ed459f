"""
Unit tests for planner/llm_client.py and config.py
"""
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import litellm
import pytest

from config import Settings, _api_base_from_url
from errors import UpstreamAuthError, UpstreamEmptyResponse, UpstreamError, UpstreamUnavailable
from planner.llm_client import LLMClient


def _response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _http_response(status_code):
    request = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
    return httpx.Response(status_code, request=request)


@pytest.fixture
def client():
    return LLMClient(Settings(llm_api_key="gsk-test", llm_model="groq/test-model", llm_timeout=12.0))


class TestComplete:
    @patch("planner.llm_client.litellm.completion")
    def test_returns_message_content(self, mock_completion, client):
        mock_completion.return_value = _response('{"days": []}')
        assert client.complete("sys", "user") == '{"days": []}'

    @patch("planner.llm_client.litellm.completion")
    def test_passes_prompts_and_settings(self, mock_completion, client):
        mock_completion.return_value = _response("ok")
        client.complete("system text", "user text", max_tokens=6000, temperature=0.3)

        kwargs = mock_completion.call_args.kwargs
        assert kwargs["model"] == "groq/test-model"
        assert kwargs["messages"] == [
            {"role": "system", "content": "system text"},
            {"role": "user", "content": "user text"},
        ]
        assert kwargs["max_tokens"] == 6000
        assert kwargs["temperature"] == 0.3
        assert kwargs["api_key"] == "gsk-test"
        assert kwargs["timeout"] == 12.0

    @patch("planner.llm_client.litellm.completion")
    def test_dict_response_with_top_level_content(self, mock_completion, client):
        mock_completion.return_value = {"choices": [], "content": "fallback text"}
        assert client.complete("s", "u") == "fallback text"

    @patch("planner.llm_client.litellm.completion")
    def test_empty_content_raises(self, mock_completion, client):
        mock_completion.return_value = _response("   ")
        with pytest.raises(UpstreamEmptyResponse):
            client.complete("s", "u")

    @patch("planner.llm_client.litellm.completion")
    def test_no_choices_raises(self, mock_completion, client):
        mock_completion.return_value = SimpleNamespace(choices=[])
        with pytest.raises(UpstreamEmptyResponse):
            client.complete("s", "u")


class TestErrorMapping:
    def test_missing_api_key_fails_before_calling(self):
        with patch("planner.llm_client.litellm.completion") as mock_completion:
            with pytest.raises(UpstreamAuthError) as exc_info:
                LLMClient(Settings(llm_api_key="")).complete("s", "u")
        mock_completion.assert_not_called()
        assert "GROQ_API_KEY" in exc_info.value.details

    @patch("planner.llm_client.litellm.completion")
    def test_rejected_credentials(self, mock_completion, client):
        mock_completion.side_effect = litellm.AuthenticationError(
            message="invalid api key", llm_provider="groq", model="groq/test-model",
        )
        with pytest.raises(UpstreamAuthError) as exc_info:
            client.complete("s", "u")
        assert exc_info.value.status_code == 500

    @patch("planner.llm_client.litellm.completion")
    def test_connection_failure(self, mock_completion, client):
        mock_completion.side_effect = litellm.APIConnectionError(
            message="connection refused", llm_provider="groq", model="groq/test-model",
        )
        with pytest.raises(UpstreamUnavailable):
            client.complete("s", "u")

    @patch("planner.llm_client.litellm.completion")
    def test_timeout(self, mock_completion, client):
        mock_completion.side_effect = litellm.Timeout(
            message="timed out", model="groq/test-model", llm_provider="groq",
        )
        with pytest.raises(UpstreamUnavailable):
            client.complete("s", "u")

    @patch("planner.llm_client.litellm.completion")
    def test_rate_limit(self, mock_completion, client):
        mock_completion.side_effect = litellm.RateLimitError(
            message="slow down", llm_provider="groq", model="groq/test-model",
        )
        with pytest.raises(UpstreamUnavailable):
            client.complete("s", "u")

    @patch("planner.llm_client.litellm.completion")
    def test_forbidden_key_is_an_auth_error(self, mock_completion, client):
        mock_completion.side_effect = litellm.PermissionDeniedError(
            message="key lacks access", llm_provider="groq", model="groq/test-model",
            response=_http_response(403),
        )
        with pytest.raises(UpstreamAuthError):
            client.complete("s", "u")

    @patch("planner.llm_client.litellm.completion")
    def test_unprocessable_request(self, mock_completion, client):
        mock_completion.side_effect = litellm.UnprocessableEntityError(
            message="bad payload", model="groq/test-model", llm_provider="groq",
            response=_http_response(422),
        )
        with pytest.raises(UpstreamUnavailable):
            client.complete("s", "u")

    @patch("planner.llm_client.litellm.completion")
    def test_unknown_sdk_failure_stays_in_taxonomy(self, mock_completion, client):
        mock_completion.side_effect = RuntimeError("provider SDK blew up")
        with pytest.raises(UpstreamError) as exc_info:
            client.complete("s", "u")
        assert "RuntimeError" in exc_info.value.details

    def test_client_message_hides_upstream_detail(self):
        payload = UpstreamUnavailable(details="secret upstream trace").to_payload()
        assert payload == {
            "error": "upstream_unavailable",
            "message": "The itinerary service is temporarily unavailable",
        }


class TestSettings:
    def test_from_env(self, monkeypatch):
        monkeypatch.setattr("config.load_dotenv", lambda: None)
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        monkeypatch.setenv("GROK_API_KEY", "legacy-key")
        monkeypatch.setenv("GROQ_API_URL", "https://api.groq.com/openai/v1/chat/completions")
        monkeypatch.setenv("APP_ENV", "production")
        monkeypatch.setenv("GENERATION_WORKERS", "4")

        settings = Settings.from_env()
        assert settings.llm_api_key == "legacy-key"
        assert settings.llm_api_base == "https://api.groq.com/openai/v1"
        assert settings.is_production is True
        assert settings.generation_workers == 4

    def test_groq_key_wins_over_legacy_name(self, monkeypatch):
        monkeypatch.setattr("config.load_dotenv", lambda: None)
        monkeypatch.setenv("GROQ_API_KEY", "new-key")
        monkeypatch.setenv("GROK_API_KEY", "legacy-key")
        assert Settings.from_env().llm_api_key == "new-key"

    def test_api_base_normalisation(self):
        assert _api_base_from_url("https://example.com/v1/") == "https://example.com/v1"
        assert _api_base_from_url("https://example.com/v1/chat/completions") == "https://example.com/v1"

    def test_defaults(self):
        settings = Settings()
        assert settings.jwt_expire_minutes == 7 * 24 * 60
        assert settings.is_production is False
