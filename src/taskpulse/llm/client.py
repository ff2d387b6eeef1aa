# src/taskpulse/llm/client.py

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import Any

import httpx
import openai
from openai import OpenAI

from ..config import Settings, _env_float, _k, get_settings
from ..core.ports import ChatMessage

logger = logging.getLogger(__name__)

_BAD_MODELS: dict[str, float] = {}  # model -> retry_at (monotonic)


def _timeouts_from_env() -> dict[str, float]:
    """
    Timeouts are configurable via env so a slow model never stalls a completion.

    Defaults:
    - connect timeout: 5s
    - read timeout: 25s (no data from server)
    - first token timeout: 20s (no content tokens)
    """
    first_token = _env_float(_k("LLM_FIRST_TOKEN_TIMEOUT_SECONDS"), 20.0)
    read_timeout = _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 25.0)
    connect_timeout = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0)

    # keep read >= first_token as a sane baseline
    read_timeout = max(read_timeout, first_token)

    return {
        "first_token": first_token,
        "read": read_timeout,
        "connect": connect_timeout,
    }


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    return exc.__class__.__name__ in {"UnauthorizedError"}


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.APIConnectionError, httpx.TimeoutException)):
        return True
    return isinstance(exc, TimeoutError)


def _is_not_found_error(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError)


def _make_timeout(connect_s: float, read_s: float) -> httpx.Timeout:
    return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)


def _build_client(settings: Settings) -> OpenAI:
    """
    Create an OpenAI-compatible client.

    Automatic retries are disabled to allow quick fallback across models.
    """
    api_key = settings.openrouter_api_key
    base_url = settings.openrouter_base_url or ""

    if not api_key or not str(api_key).strip():
        raise RuntimeError("LLM API key is not set. Set TASKPULSE_OPENROUTER_API_KEY in your .env.")

    if not base_url.strip():
        raise RuntimeError("LLM base URL is not set. Set TASKPULSE_OPENROUTER_BASE_URL in your .env.")

    t = _timeouts_from_env()
    return OpenAI(
        base_url=str(base_url),
        api_key=str(api_key),
        timeout=_make_timeout(connect_s=t["connect"], read_s=t["read"]),
        max_retries=0,
    )


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if "LLM API key is not set" in msg:
        return "LLM is not configured (missing API key). Set TASKPULSE_OPENROUTER_API_KEY in .env (see .env.example)."
    if "LLM model list is empty" in msg:
        return "LLM is not configured (no models). Set TASKPULSE_LLM_MODELS in .env (see .env.example)."
    if "LLM base URL is not set" in msg:
        return "LLM is not configured (missing base URL). Set TASKPULSE_OPENROUTER_BASE_URL in .env (see .env.example)."
    return msg


def _close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if callable(close):
        try:
            close()
        except Exception:
            logger.debug("LLM: stream close failed", exc_info=True)


def stream_chat_chunks(
    client: OpenAI,
    messages: list[ChatMessage],
    system_prompt: str,
    *,
    models: list[str],
    headers: dict[str, str] | None = None,
) -> Iterable[str]:
    """
    Stream the LLM response in text chunks.

    Behavior:
    - Tries models in the given order (TASKPULSE_LLM_MODELS).
    - If a model doesn't produce a first content token within the first-token timeout,
      we abort and try the next model.
    - 404 (model not available) -> try next, skip it for an hour.
    - Rate limit / network issues -> try next.
    - Auth issues -> fail fast (no retries across models).
    """
    if not models:
        raise RuntimeError("LLM model list is empty. Set TASKPULSE_LLM_MODELS in your .env.")

    t = _timeouts_from_env()
    first_token_timeout = float(t["first_token"])
    timeout_obj = _make_timeout(connect_s=t["connect"], read_s=t["read"])

    last_error: Exception | None = None
    now = time.monotonic()

    for model in models:
        model = (model or "").strip()
        if not model:
            continue

        retry_at = _BAD_MODELS.get(model)
        if retry_at is not None and retry_at > now:
            continue

        logger.info("LLM: trying model=%s (first_token_timeout=%.1fs)", model, first_token_timeout)
        t0 = time.monotonic()
        deadline = t0 + first_token_timeout

        stream = None
        used_any = False

        try:
            stream = client.chat.completions.create(
                model=model,
                stream=True,
                extra_headers=headers or None,
                messages=[{"role": "system", "content": system_prompt}, *messages],  # type: ignore[list-item]
                timeout=timeout_obj,
            )

            for chunk in stream:
                if not used_any and time.monotonic() > deadline:
                    last_error = TimeoutError(f"First token timeout on model: {model}")
                    logger.info("LLM: first token timeout on model=%s -> trying next", model)
                    break

                content = chunk.choices[0].delta.content if chunk.choices else None
                if content:
                    if not used_any:
                        logger.info("LLM: first token from model=%s (%.2fs)", model, time.monotonic() - t0)
                    used_any = True
                    yield content

            if used_any:
                logger.debug("LLM: completed with model=%s", model)
                return

            if last_error is None:
                last_error = RuntimeError(f"Model returned no content: {model}")

        except Exception as e:
            last_error = e

            if _is_auth_error(e):
                raise RuntimeError(
                    "LLM authentication failed. Check your API key (TASKPULSE_OPENROUTER_API_KEY)."
                ) from e

            if _is_not_found_error(e):
                _BAD_MODELS[model] = time.monotonic() + 3600.0
                logger.info("LLM: model not available (404): %s", model)
                continue

            if _is_rate_limit_error(e):
                logger.info("LLM: rate-limited on model=%s, trying next", model)
                continue

            if _is_connection_error(e):
                logger.info("LLM: network/timeout error on model=%s, trying next", model)
                continue

            logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
            continue

        finally:
            if stream is not None:
                _close_stream(stream)

    if last_error is not None:
        if _is_rate_limit_error(last_error):
            raise RuntimeError("LLM is rate-limited. Try again later.") from last_error
        if _is_connection_error(last_error):
            raise RuntimeError("LLM network/timeout error. Try again later or change models.") from last_error
        raise RuntimeError("All LLM models failed.") from last_error

    raise RuntimeError("All LLM models failed.")


class OpenRouterLLMClient:
    """LLMClient backed by an OpenAI-compatible endpoint (OpenRouter by default)."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings if settings is not None else get_settings()
        # Fails fast when no key/base URL is configured; callers fall back to OfflineLLMClient.
        self._client = _build_client(self._settings)

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        return stream_chat_chunks(
            self._client,
            messages,
            system_prompt,
            models=list(self._settings.llm_models),
            headers=dict(self._settings.extra_headers),
        )
