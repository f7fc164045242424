"""Chat-completion collaborators the conversation controller delegates to.

A collaborator is any async callable ``(history, new_text) -> reply``. Two
implementations are provided: one for the widget's HTTP chat endpoint and one
for a local Ollama host. Both raise ``CollaboratorError`` subclasses whose
``detail`` is safe to show to the user.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
import logging
from typing import Any, Protocol, runtime_checkable

import httpx
from ollama import AsyncClient, ResponseError

from .exceptions import (
    CollaboratorConnectionError,
    CollaboratorError,
    CollaboratorResponseError,
)
from .models import Message

LOGGER = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:8003/api/chat"


@runtime_checkable
class ChatCollaborator(Protocol):
    """Produce the assistant reply for ``new_text`` given prior ``history``."""

    async def __call__(self, history: Sequence[Message], new_text: str) -> str: ...


def _detail_from_response(response: httpx.Response) -> str | None:
    """Pull the ``detail`` field out of an error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        detail = body.get("detail")
        if isinstance(detail, str) and detail.strip():
            return detail.strip()
        if detail:
            return str(detail)
    return None


class HttpChatCollaborator:
    """POST the conversation to a chat endpoint and return its ``message`` field.

    Request body: ``{"messages": [...], "new_message": text}``. Success body:
    ``{"message": reply}``. Error bodies may carry a ``detail`` string.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 30.0,
        retries: int = 0,
        retry_backoff_seconds: float = 0.5,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self.retries = max(0, retries)
        self.retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client when this collaborator created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def build_payload(history: Sequence[Message], new_text: str) -> dict[str, Any]:
        return {
            "messages": [
                {
                    "role": message.role.value,
                    "content": message.content,
                    "image": message.media or "",
                    "timestamp": message.timestamp,
                }
                for message in history
            ],
            "new_message": new_text,
        }

    def _map_exception(self, exc: Exception) -> CollaboratorError:
        if isinstance(exc, CollaboratorError):
            return exc
        if isinstance(exc, httpx.HTTPStatusError):
            detail = _detail_from_response(exc.response)
            return CollaboratorResponseError(
                detail
                or f"Request failed with status code {exc.response.status_code}"
            )
        if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
            return CollaboratorConnectionError(
                f"Unable to reach chat service at {self.endpoint}."
            )
        return CollaboratorError(str(exc) or exc.__class__.__name__)

    async def _post_once(self, payload: dict[str, Any]) -> str:
        response = await self._get_client().post(self.endpoint, json=payload)
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError as exc:
            raise CollaboratorResponseError(
                "Chat service returned a non-JSON response."
            ) from exc
        message = body.get("message") if isinstance(body, dict) else None
        if not isinstance(message, str):
            raise CollaboratorResponseError(
                "Chat service response did not include a message."
            )
        return message

    async def __call__(self, history: Sequence[Message], new_text: str) -> str:
        payload = self.build_payload(history, new_text)
        for attempt in range(self.retries + 1):
            try:
                return await self._post_once(payload)
            except asyncio.CancelledError:
                LOGGER.info(
                    "collaborator.request.cancelled",
                    extra={"event": "collaborator.request.cancelled"},
                )
                raise
            except Exception as exc:  # noqa: BLE001
                mapped_exc = self._map_exception(exc)
                LOGGER.warning(
                    "collaborator.request.retry",
                    extra={
                        "event": "collaborator.request.retry",
                        "attempt": attempt + 1,
                        "error_type": mapped_exc.__class__.__name__,
                    },
                )
                if attempt >= self.retries:
                    raise mapped_exc from exc
                await asyncio.sleep(self.retry_backoff_seconds * (attempt + 1))
        raise CollaboratorError("Chat request was not attempted.")


class OllamaChatCollaborator:
    """Answer through a non-streaming ``ollama.AsyncClient.chat`` call."""

    def __init__(
        self,
        host: str,
        model: str,
        system_prompt: str = "",
        timeout: int = 120,
        client: Any | None = None,
    ) -> None:
        self.host = host
        self.model = model
        self.system_prompt = system_prompt.strip()
        self._client = client if client is not None else AsyncClient(
            host=host, timeout=timeout
        )

    def build_messages(
        self, history: Sequence[Message], new_text: str
    ) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        for message in history:
            if message.content.strip():
                messages.append(
                    {"role": message.role.value, "content": message.content}
                )
        messages.append({"role": "user", "content": new_text})
        return messages

    @staticmethod
    def _extract_content(response: Any) -> str | None:
        """Read ``message.content`` from an SDK object or a plain dict."""
        message_obj = getattr(response, "message", None)
        if message_obj is not None:
            value = getattr(message_obj, "content", None)
            if isinstance(value, str):
                return value
        if isinstance(response, dict):
            message = response.get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                return message["content"]
        return None

    def _map_exception(self, exc: Exception) -> CollaboratorError:
        if isinstance(exc, CollaboratorError):
            return exc
        if isinstance(exc, ResponseError):
            lower_message = str(exc.error).lower()
            if "model" in lower_message and "not found" in lower_message:
                return CollaboratorResponseError(
                    f"Model {self.model!r} was not found on {self.host}."
                )
            return CollaboratorResponseError(str(exc.error))
        if isinstance(
            exc, (ConnectionError, httpx.NetworkError, httpx.TimeoutException)
        ):
            return CollaboratorConnectionError(
                f"Unable to connect to Ollama host {self.host}."
            )
        return CollaboratorError(str(exc) or exc.__class__.__name__)

    async def __call__(self, history: Sequence[Message], new_text: str) -> str:
        try:
            response = await self._client.chat(
                model=self.model,
                messages=self.build_messages(history, new_text),
                stream=False,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise self._map_exception(exc) from exc

        content = self._extract_content(response)
        if content is None:
            raise CollaboratorResponseError(
                "Ollama response did not include content."
            )
        return content
