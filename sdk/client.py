"""TelegramClient -- the transport layer underneath the update loop.

Every Bot API method goes through :meth:`TelegramClient.call_method`, which
POSTs JSON with ``requests``, checks the response envelope, and either returns
the ``result`` field or raises one of the two error kinds from
:mod:`sdk.exceptions`.  The client is synchronous; async callers offload it
to a worker thread (see :mod:`bot.update_loop`), and :meth:`TelegramClient.abort`
abandons a pending long poll.

Only the handful of wrappers the bot layer actually needs are defined here.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import requests
from pydantic import ValidationError

from core.logger import PollgramLogger
from sdk.exceptions import NetworkError, TelegramError
from sdk.models import Message, Update, User

logger = PollgramLogger.get_logger()

DEFAULT_API_BASE = "https://api.telegram.org/"


class TelegramClient:
    """Client-side service layer for the Telegram Bot API.

    Raises :class:`~sdk.exceptions.NetworkError` for transport failures and
    malformed envelopes, :class:`~sdk.exceptions.TelegramError` when the API
    answers ``ok: false``.
    """

    _DEFAULT_TIMEOUT: int = 10

    def __init__(self, token: str, api_base: str = DEFAULT_API_BASE, timeout: int = _DEFAULT_TIMEOUT) -> None:
        """Create a new client.

        Args:
            token: Bot authentication token.
            api_base: API root URL, overridable for test servers.
            timeout: Request timeout in seconds, added on top of any
                long-poll timeout.
        """
        if not isinstance(token, str) or not token:
            raise ValueError("Invalid auth token")
        self._token = token
        self._api_base = api_base if api_base.endswith("/") else api_base + "/"
        self._timeout = timeout
        self._session = requests.Session()
        # getUpdates gets its own session so abort() leaves other calls alone.
        self._poll_session = requests.Session()

    @property
    def timeout(self) -> int:
        return self._timeout

    def _url(self, method: str) -> str:
        return f"{self._api_base}bot{self._token}/{method}"

    # ------------------------------------------------------------------
    #  Internal helpers
    # ------------------------------------------------------------------

    def call_method(self, method: str, parameters: Optional[Dict[str, Any]] = None, *, timeout: Optional[float] = None) -> Any:
        """Call *method* and return its ``result`` field.

        ``None`` parameters are dropped before sending.

        Raises:
            NetworkError: On transport failures or a malformed response.
            TelegramError: If Telegram returned ``ok: false``.
        """
        return self._post(self._session, method, parameters, timeout)

    def _post(self, session: requests.Session, method: str, parameters: Optional[Dict[str, Any]], timeout: Optional[float]) -> Any:
        payload = {k: v for k, v in (parameters or {}).items() if v is not None}
        try:
            response = session.post(
                self._url(method),
                json=payload,
                headers={"Accept": "application/json"},
                timeout=timeout if timeout is not None else self._timeout,
            )
        except requests.RequestException as exc:
            logger.debug("Request failed", extra={"api_method": method, "error": str(exc)})
            raise NetworkError(exc, method, payload) from exc
        return self._process_response(method, payload, response)

    @staticmethod
    def _process_response(method: str, payload: Dict[str, Any], response: requests.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            raise NetworkError(f"body is not JSON: {response.text[:200]!r}", method, payload)
        if not isinstance(body, dict):
            raise NetworkError("body is not a JSON object", method, payload)
        ok = body.get("ok")
        if not isinstance(ok, bool):
            raise NetworkError("ok field is not boolean", method, payload)
        if ok != (response.status_code == 200):
            raise NetworkError("ok field not matching HTTP response", method, payload)
        if not ok:
            raise TelegramError(response.status_code, body, method, payload)
        return body.get("result")

    # ------------------------------------------------------------------
    #  Endpoint wrappers
    # ------------------------------------------------------------------

    def get_updates(self, offset: Optional[int] = None, limit: Optional[int] = 100, timeout: Optional[int] = 0, allowed_updates: Optional[List[str]] = None) -> List[Update]:
        """Receive incoming updates using long polling.

        A negative *offset* retrieves updates counted back from the end of
        the queue; all earlier updates are forgotten.  The HTTP timeout is
        stretched by *timeout* so a long poll never trips it.
        """
        payload: Dict[str, Any] = {}
        if offset is not None:
            payload["offset"] = offset
        if limit is not None:
            payload["limit"] = limit
        if timeout is not None:
            payload["timeout"] = timeout
        if allowed_updates is not None:
            payload["allowed_updates"] = allowed_updates
        result = self._post(self._poll_session, "getUpdates", payload, (timeout or 0) + self._timeout)
        if not isinstance(result, list):
            raise NetworkError("getUpdates result is not a list", "getUpdates", payload)
        updates: List[Update] = []
        for item in result:
            try:
                update = Update.parse_lenient(item)
            except ValidationError as exc:
                raise NetworkError(exc, "getUpdates", payload) from exc
            if update.validation_error is not None:
                logger.warning(
                    "Malformed update payload, passed on unclassified",
                    extra={"update_id": update.update_id, "error": str(update.validation_error)},
                )
            updates.append(update)
        return updates

    def get_me(self) -> User:
        """Return basic information about the bot."""
        return User.model_validate(self.call_method("getMe"))

    def send_message(self, chat_id: Union[int, str], text: str, parse_mode: Optional[str] = None, disable_notification: Optional[bool] = None, reply_to_message_id: Optional[int] = None, reply_markup: Optional[Dict[str, Any]] = None) -> Message:
        """Send a text message and return the sent :class:`Message`."""
        payload: Dict[str, Any] = {}
        payload["chat_id"] = chat_id
        payload["text"] = text
        if parse_mode is not None:
            payload["parse_mode"] = parse_mode
        if disable_notification is not None:
            payload["disable_notification"] = disable_notification
        if reply_to_message_id is not None:
            payload["reply_to_message_id"] = reply_to_message_id
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        return Message.model_validate(self.call_method("sendMessage", payload))

    def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None, show_alert: Optional[bool] = None) -> bool:
        """Acknowledge a callback query so the client spinner stops."""
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text is not None:
            payload["text"] = text
        if show_alert is not None:
            payload["show_alert"] = show_alert
        return bool(self.call_method("answerCallbackQuery", payload))

    def answer_inline_query(self, inline_query_id: str, results: List[Dict[str, Any]], cache_time: Optional[int] = None, is_personal: Optional[bool] = None) -> bool:
        """Answer an inline query with a list of ``InlineQueryResult`` dicts."""
        payload: Dict[str, Any] = {"inline_query_id": inline_query_id, "results": results}
        if cache_time is not None:
            payload["cache_time"] = cache_time
        if is_personal is not None:
            payload["is_personal"] = is_personal
        return bool(self.call_method("answerInlineQuery", payload))

    def abort(self) -> None:
        """Abandon an in-flight ``getUpdates`` call.

        The long-poll session is replaced and the old one closed, so its
        connection is discarded instead of being reused once the pending
        request returns.  Other methods are not affected.
        """
        session, self._poll_session = self._poll_session, requests.Session()
        session.close()
        logger.debug("Long-poll session aborted")

    def close(self) -> None:
        """Release pooled HTTP connections."""
        self._session.close()
        self._poll_session.close()
