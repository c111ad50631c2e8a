"""
Text-completion boundary (litellm).

One call = one model round-trip; retries and timeouts policy live in the
planner, this module only knows how to talk to the provider.
"""

from __future__ import annotations

import os
from typing import Optional

import litellm

# Silence litellm's own verbose logging
litellm.suppress_debug_info = True
# Drop params unsupported by the active model (e.g. temperature on gpt-5)
litellm.drop_params = True

_LLM_DEFAULTS = {
    "openai":    "gpt-4o-mini",
    "gemini":    "gemini-2.0-flash",
    "anthropic": "claude-sonnet-4-20250514",
}

# Failures worth another attempt: the provider was slow or unreachable.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    litellm.Timeout,
    litellm.APIConnectionError,
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    TimeoutError,
    ConnectionError,
)


def llm_name() -> str:
    """Return the litellm model string (provider/model format)."""
    provider = os.getenv("LLM_PROVIDER", "openai").lower().strip()
    if provider not in _LLM_DEFAULTS:
        provider = "openai"
    model = os.getenv("LLM_MODEL", _LLM_DEFAULTS[provider])
    if provider == "openai":
        return model  # litellm uses bare model name for OpenAI
    return f"{provider}/{model}"


def complete(
    prompt: str,
    *,
    system: str = "",
    max_tokens: int = 2000,
    temperature: float = 0.7,
    timeout: float = 60.0,
    model: Optional[str] = None,
) -> str:
    """Make a single litellm.completion() call and return the text content.

    An empty or missing message body comes back as "".
    """
    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    response = litellm.completion(
        model=model or llm_name(),
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        timeout=timeout,
    )
    return response.choices[0].message.content or ""


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TRANSIENT_ERRORS)
