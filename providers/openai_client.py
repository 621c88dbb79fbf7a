"""
OpenAI-compatible chat-completions client (OpenRouter, Groq).

One instance per configured provider. Each call is a single HTTPS POST;
the JSON body is validated here, once, so nothing past this boundary
touches raw provider payloads. Failures are raised as ProviderError with
a kind the retry layer can classify.
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from graph.config import Settings
from graph.errors import ErrorCode, ProviderError
from graph.models import ProviderReply, SelectedModel

logger = logging.getLogger("tutor-router.openai")


class ChatCompletionsClient:
    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 90.0,
        max_tokens: int = 1024,
        enhanced_max_tokens: int = 2000,
        temperature: float = 0.7,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.name = name
        self.base_url = base_url
        self._api_key = api_key
        self._extra_headers = dict(headers or {})
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.enhanced_max_tokens = enhanced_max_tokens
        self.temperature = temperature
        self._http = http_client

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        headers.update(self._extra_headers)
        return headers

    async def call(
        self,
        prompt: str,
        model: SelectedModel,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> ProviderReply:
        """Plain call. History, when given, is sent verbatim (it already holds the current turn)."""
        if history:
            messages = [{"role": m["role"], "content": m["content"]} for m in history]
        else:
            messages = [{"role": "user", "content": prompt}]

        logger.info(f"Calling {self.name} with model: {model.id}, history: {len(history or [])} messages")
        return await self._post(model, messages, self.max_tokens)

    async def call_enhanced(self, prompt: str, system_prompt: str, model: SelectedModel) -> ProviderReply:
        """
        Enhanced call carrying system instructions.

        Models flagged system_role=False (several free-tier models) silently
        ignore system messages, so the instructions are folded into the user turn.
        """
        if model.system_role:
            messages = [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ]
        else:
            messages = [{"role": "user", "content": f"{system_prompt}\n\n{prompt}"}]

        logger.info(f"Calling {self.name} ENHANCED with model: {model.id} (system_role={model.system_role})")
        return await self._post(model, messages, self.enhanced_max_tokens)

    async def _post(self, model: SelectedModel, messages: List[Dict[str, str]], max_tokens: int) -> ProviderReply:
        body = {
            "model": model.id,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": self.temperature,
        }

        t0 = time.perf_counter()
        try:
            if self._http is not None:
                resp = await self._http.post(self.base_url, json=body, headers=self._headers(), timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(self.base_url, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            logger.error(f"{self.name} request timed out after {self.timeout}s ({type(e).__name__})")
            raise ProviderError(f"{self.name} request timed out", ErrorCode.TIMEOUT, provider=self.name) from e
        except httpx.DecodingError as e:
            logger.error(f"{self.name} sent an undecodable body: {e}")
            raise ProviderError(
                f"Malformed response body from {self.name}", ErrorCode.INVALID_RESPONSE, provider=self.name
            ) from e
        except httpx.RequestError as e:
            logger.error(f"{self.name} network error: {type(e).__name__}: {e}")
            raise ProviderError(
                f"Network error: unable to reach {self.name}", ErrorCode.NETWORK_ERROR, provider=self.name
            ) from e

        took_ms = int((time.perf_counter() - t0) * 1000)
        logger.debug(f"{self.name} HTTP {resp.status_code} in {took_ms}ms")

        if resp.status_code >= 400:
            raise self._map_http_error(resp)

        return ProviderReply(text=self._extract_content(resp), provider=self.name, model_id=model.id)

    def _map_http_error(self, resp: httpx.Response) -> ProviderError:
        status = resp.status_code
        detail = _error_message(resp)
        logger.error(f"{self.name} API error: status={status} message={detail}")

        if status == 429:
            return ProviderError(f"{self.name} rate limited", ErrorCode.RATE_LIMITED, status, self.name)
        if status in (401, 403):
            return ProviderError(f"{self.name} authentication failed", ErrorCode.AUTHENTICATION_ERROR, status, self.name)
        return ProviderError(f"{self.name} error: {detail}", ErrorCode.UNKNOWN, status, self.name)

    def _extract_content(self, resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ProviderError(
                f"Malformed response body from {self.name}", ErrorCode.INVALID_RESPONSE, resp.status_code, self.name
            ) from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            logger.warning(f"{self.name} returned malformed response structure (choices={type(choices).__name__})")
            raise ProviderError(
                f"Malformed response structure from {self.name}", ErrorCode.INVALID_RESPONSE, resp.status_code, self.name
            )

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content:
            logger.warning(f"{self.name} returned empty content")
            raise ProviderError(
                f"Empty response from {self.name}", ErrorCode.INVALID_RESPONSE, resp.status_code, self.name
            )

        logger.info(f"{self.name} response valid ({len(content)} chars)")
        return content


def _error_message(resp: httpx.Response) -> str:
    """Best-effort message from an OpenAI-style error body."""
    try:
        data: Any = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
        if data.get("message"):
            return str(data["message"])
    return f"HTTP {resp.status_code}"


def make_provider_clients(
    settings: Settings, http_client: Optional[httpx.AsyncClient] = None
) -> Dict[str, ChatCompletionsClient]:
    """One client per provider that has a key; providers without one are skipped."""
    clients = {}
    for name, p in settings.providers.items():
        if not p.configured:
            logger.debug(f"{name} disabled: missing API key")
            continue
        clients[name] = ChatCompletionsClient(
            name=name,
            base_url=p.base_url,
            api_key=p.api_key,
            headers=dict(p.headers),
            timeout=settings.timeout_sec,
            max_tokens=settings.max_tokens,
            enhanced_max_tokens=settings.enhanced_max_tokens,
            temperature=settings.temperature,
            http_client=http_client,
        )
    return clients
