from __future__ import annotations

import re
from typing import Any, Protocol, TypeVar

import httpx
import msgspec

from ..logging import get_logger
from .api_schemas import ChatMember, Message, Update, User

logger = get_logger(__name__)

T = TypeVar("T")

ParseMode = str


class BotClient(Protocol):
    async def close(self) -> None: ...

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[Update] | None: ...

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_to_message_id: int | None = None,
        parse_mode: ParseMode | None = None,
        reply_markup: dict[str, Any] | None = None,
        disable_notification: bool | None = None,
    ) -> Message | None: ...

    async def get_chat_administrators(self, chat_id: int | str) -> list[ChatMember]: ...

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        show_alert: bool | None = None,
    ) -> bool: ...

    async def get_me(self) -> User | None: ...


_TOKEN_RE = re.compile(r"/bot[^/]+")


def redact_token(text: str) -> str:
    return _TOKEN_RE.sub("/bot[REDACTED]", text)


def retry_after_from_payload(payload: dict[str, Any]) -> float | None:
    params = payload.get("parameters")
    if isinstance(params, dict):
        retry_after = params.get("retry_after")
        if isinstance(retry_after, (int, float)):
            return float(retry_after)
    return None


class HttpBotClient:
    """Bot API client over httpx.

    Every failure (network, HTTP status, malformed body, API error) is logged
    and reported to the caller as ``None``; nothing raises past this class.
    """

    def __init__(
        self,
        token: str,
        *,
        timeout_s: float = 120,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = "https://api.telegram.org",
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._base = f"{base_url.rstrip('/')}/bot{token}"
        self._client = http_client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = http_client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, *, json: dict[str, Any]) -> Any | None:
        logger.debug("telegram.request", method=method, payload=json)
        try:
            resp = await self._client.post(f"{self._base}/{method}", json=json)
        except httpx.HTTPError as exc:
            url = exc.request.url if _has_request(exc) else None
            logger.error(
                "telegram.network_error",
                method=method,
                url=redact_token(str(url)) if url is not None else None,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.error(
                "telegram.bad_response",
                method=method,
                status=resp.status_code,
                error=str(exc),
                error_type=exc.__class__.__name__,
                body=resp.text,
            )
            return None
        return self._parse_telegram_envelope(method=method, resp=resp, payload=payload)

    def _parse_telegram_envelope(
        self,
        *,
        method: str,
        resp: httpx.Response,
        payload: Any,
    ) -> Any | None:
        if not isinstance(payload, dict):
            logger.error(
                "telegram.invalid_payload",
                method=method,
                status=resp.status_code,
                payload=payload,
            )
            return None
        if not payload.get("ok"):
            if payload.get("error_code") == 429:
                logger.warning(
                    "telegram.rate_limited",
                    method=method,
                    retry_after=retry_after_from_payload(payload),
                )
                return None
            logger.error(
                "telegram.api_error",
                method=method,
                status=resp.status_code,
                error_code=payload.get("error_code"),
                description=payload.get("description"),
            )
            return None
        logger.debug("telegram.response", method=method, payload=payload)
        return payload.get("result")

    def _decode_result(self, *, method: str, payload: Any, model: type[T]) -> T | None:
        if payload is None:
            return None
        try:
            return msgspec.convert(payload, type=model)
        except msgspec.ValidationError as exc:
            logger.error(
                "telegram.decode_error",
                method=method,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[Update] | None:
        params: dict[str, Any] = {"timeout": timeout_s}
        if offset is not None:
            params["offset"] = offset
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates
        result = await self._request("getUpdates", json=params)
        return self._decode_result(method="getUpdates", payload=result, model=list[Update])

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_to_message_id: int | None = None,
        parse_mode: ParseMode | None = None,
        reply_markup: dict[str, Any] | None = None,
        disable_notification: bool | None = None,
    ) -> Message | None:
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_to_message_id is not None:
            params["reply_parameters"] = {
                "message_id": reply_to_message_id,
                "allow_sending_without_reply": True,
            }
        if parse_mode is not None:
            params["parse_mode"] = parse_mode
        if reply_markup is not None:
            params["reply_markup"] = reply_markup
        if disable_notification is not None:
            params["disable_notification"] = disable_notification
        result = await self._request("sendMessage", json=params)
        return self._decode_result(method="sendMessage", payload=result, model=Message)

    async def get_chat_administrators(self, chat_id: int | str) -> list[ChatMember]:
        result = await self._request("getChatAdministrators", json={"chat_id": chat_id})
        admins = self._decode_result(
            method="getChatAdministrators", payload=result, model=list[ChatMember]
        )
        return admins or []

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        show_alert: bool | None = None,
    ) -> bool:
        params: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text is not None:
            params["text"] = text
        if show_alert is not None:
            params["show_alert"] = show_alert
        result = await self._request("answerCallbackQuery", json=params)
        return bool(result)

    async def get_me(self) -> User | None:
        result = await self._request("getMe", json={})
        return self._decode_result(method="getMe", payload=result, model=User)


def _has_request(exc: httpx.HTTPError) -> bool:
    # httpx raises RuntimeError from .request when the error carries none
    try:
        exc.request
    except RuntimeError:
        return False
    return True
