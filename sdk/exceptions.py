"""Exception hierarchy for the pollgram Telegram transport.

Two kinds of failure can come out of an API call:

* :class:`NetworkError` — the request could not be carried out, or the
  response was not a well-formed Bot API envelope.  Always transient.
* :class:`TelegramError` — Telegram answered with ``ok: false``.  The
  remote side explicitly rejected the call.

Neither kind guarantees the request was *not* performed.
"""

from typing import Any, Dict, Optional

from pydantic import ValidationError

from sdk.models import Error


class RequestError(Exception):
    """Base class for every error produced by an API request.

    Attributes:
        method: Bot API method name (e.g. ``"getUpdates"``).
        parameters: Parameters the method was called with.
    """

    def __init__(self, message: str, method: str, parameters: Optional[Dict[str, Any]] = None) -> None:
        self.method = method
        self.parameters = parameters or {}
        super().__init__(f"{message} (when calling {method})")


class NetworkError(RequestError):
    """The HTTP request failed or returned an unexpected response.

    Attributes:
        reason: Description of the failure, or the original exception.
    """

    def __init__(self, reason: "str | BaseException", method: str, parameters: Optional[Dict[str, Any]] = None) -> None:
        self.reason = reason
        super().__init__(str(reason), method, parameters)


class TelegramError(RequestError):
    """Telegram returned an error response (``ok: false``).

    Attributes:
        status_code: HTTP status code returned by the API.
        response_body: Raw response body as a dict.
        error_code: ``error_code`` field of the body, when present.
        description: Human-readable ``description`` field.
        retry_after: Seconds to wait before retrying, when flood-limited.
        envelope: The body parsed as :class:`~sdk.models.Error`, or ``None``
            when it lacks required fields.
    """

    def __init__(
        self,
        status_code: int,
        response_body: Optional[Dict[str, Any]],
        method: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body or {}
        try:
            self.envelope: Optional[Error] = Error.model_validate(self.response_body)
        except ValidationError:
            # Incomplete error bodies still carry whatever fields they have.
            self.envelope = None
        if self.envelope is not None:
            self.error_code: Optional[int] = self.envelope.error_code
            self.description: str = self.envelope.description
            params = self.envelope.parameters
            self.retry_after: Optional[int] = params.retry_after if params is not None else None
        else:
            self.error_code = self.response_body.get("error_code")
            self.description = self.response_body.get("description", "Unknown error")
            self.retry_after = None
        super().__init__(f"API error {status_code}: {self.description}", method, parameters)
