"""
Chat-completion client (litellm).

One call = one LLM round-trip; retries are left to the caller.  Credentials,
model and endpoint come from the Settings object passed in, never from the
environment.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import litellm

from config import Settings
from errors import UpstreamAuthError, UpstreamEmptyResponse, UpstreamUnavailable

logger = logging.getLogger(__name__)

# Silence litellm's own verbose logging
litellm.suppress_debug_info = True
# Drop params unsupported by the active model
litellm.drop_params = True

_AUTH_ERRORS = (
    litellm.AuthenticationError,
    litellm.PermissionDeniedError,
)

_UNAVAILABLE_ERRORS = (
    litellm.APIConnectionError,
    litellm.Timeout,
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    litellm.BadRequestError,
    litellm.NotFoundError,
    litellm.UnprocessableEntityError,
    litellm.APIError,
)


def _extract_content(response: Any) -> Optional[str]:
    """Return choices[0].message.content, falling back to a top-level content field."""
    if isinstance(response, dict):
        choices = response.get("choices") or []
        if choices:
            content = (choices[0].get("message") or {}).get("content")
            if content:
                return content
        return response.get("content")

    choices = getattr(response, "choices", None) or []
    if choices:
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if content:
            return content
    return getattr(response, "content", None)


class LLMClient:
    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def model(self) -> str:
        return self.settings.llm_model

    def complete(self, system_prompt: str, user_prompt: str, *,
                 max_tokens: int = 1000, temperature: float = 0.3) -> str:
        """Make a single chat-completion call and return the text content."""
        if not self.settings.llm_api_key:
            raise UpstreamAuthError(
                details="LLM API key not configured. Please set GROQ_API_KEY in the .env file",
            )

        try:
            response = litellm.completion(
                model=self.settings.llm_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                api_key=self.settings.llm_api_key,
                api_base=self.settings.llm_api_base or None,
                timeout=self.settings.llm_timeout,
            )
        except _AUTH_ERRORS as exc:
            logger.error("LLM API rejected credentials: %s", exc)
            raise UpstreamAuthError(details=f"Invalid LLM API key: {exc}") from exc
        except _UNAVAILABLE_ERRORS as exc:
            logger.error("LLM API call failed: %s", exc)
            raise UpstreamUnavailable(details=str(exc)) from exc
        except Exception as exc:
            # Provider SDK errors outside litellm's own hierarchy
            logger.exception("Unexpected LLM client failure")
            raise UpstreamUnavailable(details=f"{type(exc).__name__}: {exc}") from exc

        content = _extract_content(response)
        if not content or not str(content).strip():
            logger.error("LLM API returned no content (model=%s)", self.settings.llm_model)
            raise UpstreamEmptyResponse(details="No content in LLM API response")
        return str(content)
