"""Update classification — raw :class:`~sdk.models.Update` to a tagged variant.

An ``Update`` carries exactly one populated kind field.  :func:`classify`
decides which one, once, and wraps the payload in an immutable
:class:`IncomingUpdate` tagged with :class:`UpdateKind`.  Nothing downstream
inspects the raw kind fields again.
"""

from __future__ import annotations

import dataclasses
import enum
from typing import Any, Generic, Optional, TypeVar

from core.logger import PollgramLogger
from sdk.models import Chat, Message, Update

logger = PollgramLogger.get_logger()

P = TypeVar("P")


class UpdateKind(str, enum.Enum):
    """Every update kind the classifier understands.

    Values are the Bot API field names, so they double as entries of the
    ``allowed_updates`` list sent to ``getUpdates``.
    """

    MESSAGE = "message"
    EDITED_MESSAGE = "edited_message"
    CHANNEL_POST = "channel_post"
    EDITED_CHANNEL_POST = "edited_channel_post"
    INLINE_QUERY = "inline_query"
    CHOSEN_INLINE_RESULT = "chosen_inline_result"
    CALLBACK_QUERY = "callback_query"
    SHIPPING_QUERY = "shipping_query"
    PRE_CHECKOUT_QUERY = "pre_checkout_query"
    POLL = "poll"
    POLL_ANSWER = "poll_answer"


MESSAGE_KINDS: frozenset[UpdateKind] = frozenset({
    UpdateKind.MESSAGE,
    UpdateKind.EDITED_MESSAGE,
    UpdateKind.CHANNEL_POST,
    UpdateKind.EDITED_CHANNEL_POST,
})

_EDITED_KINDS: frozenset[UpdateKind] = frozenset({
    UpdateKind.EDITED_MESSAGE,
    UpdateKind.EDITED_CHANNEL_POST,
})

_CHANNEL_KINDS: frozenset[UpdateKind] = frozenset({
    UpdateKind.CHANNEL_POST,
    UpdateKind.EDITED_CHANNEL_POST,
})


@dataclasses.dataclass(frozen=True, slots=True)
class IncomingUpdate(Generic[P]):
    """A classified update.

    Attributes:
        id: The ``update_id`` assigned by Telegram.
        kind: Which payload shape :attr:`payload` has.
        queued: ``True`` if the update arrived while draining the backlog.
        payload: The populated kind field (a ``Message``, ``CallbackQuery``, …).
        update: The raw update, for fields the variant does not surface.
    """

    id: int
    kind: UpdateKind
    queued: bool
    payload: P
    update: Update = dataclasses.field(repr=False, compare=False)

    @property
    def is_message(self) -> bool:
        """``True`` for messages and channel posts, edited or not."""
        return self.kind in MESSAGE_KINDS

    @property
    def edited(self) -> bool:
        return self.kind in _EDITED_KINDS

    @property
    def is_channel(self) -> bool:
        return self.kind in _CHANNEL_KINDS

    @property
    def message(self) -> Optional[Message]:
        """The payload when it is a message, otherwise ``None``."""
        return self.payload if self.is_message else None  # type: ignore[return-value]

    @property
    def chat(self) -> Optional[Chat]:
        msg = self.message
        return msg.chat if msg is not None else None

    @property
    def text(self) -> Optional[str]:
        msg = self.message
        return msg.text if msg is not None else None


class UnknownUpdateError(Exception):
    """Raised-as-value for an update whose kind the classifier does not know.

    Covers both kinds newer than :class:`UpdateKind` and payloads that failed
    validation (see :meth:`~sdk.models.Update.parse_lenient`).  Only surfaced
    (as a notification, never raised) when strict mode is on.
    """

    def __init__(self, update: Update) -> None:
        self.update_id = update.update_id
        self.update = update
        self.validation_error = update.validation_error
        if self.validation_error is not None:
            message = f"Malformed payload in update {update.update_id}: {self.validation_error.error_count()} validation error(s)"
        else:
            extra = sorted(update.model_extra or {})
            message = f"Unknown kind for update {update.update_id}: {extra or 'no fields'}"
        super().__init__(message)


def classify(update: Update, queued: bool = False) -> Optional[IncomingUpdate[Any]]:
    """Map *update* to its :class:`IncomingUpdate`, or ``None`` if unrecognised.

    Kind fields are checked in :class:`UpdateKind` declaration order; the
    first populated one wins.
    """
    for kind in UpdateKind:
        payload = getattr(update, kind.value)
        if payload is not None:
            return IncomingUpdate(
                id=update.update_id,
                kind=kind,
                queued=queued,
                payload=payload,
                update=update,
            )
    logger.debug("Unrecognised update kind", extra={"update_id": update.update_id})
    return None
