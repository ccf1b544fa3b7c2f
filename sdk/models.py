"""Pydantic models for the raw shapes delivered by ``getUpdates``.

Only the types reachable from :class:`Update` are modelled here; they are the
input of the classifier in :mod:`bot.classifier`.  Unknown fields are ignored
so newer Bot API releases keep validating.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError


class TelegramModel(BaseModel):
    """Common configuration for every Bot API object."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ResponseParameters(TelegramModel):
    """Contains information about why a request was unsuccessful."""

    migrate_to_chat_id: Optional[int] = None
    retry_after: Optional[int] = None


class Error(TelegramModel):
    """Error envelope returned with ``ok: false``."""

    ok: bool = False
    error_code: int
    description: str
    parameters: Optional[ResponseParameters] = None


class User(TelegramModel):
    """A Telegram user or bot."""

    id: int
    is_bot: bool
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None
    can_join_groups: Optional[bool] = None
    can_read_all_group_messages: Optional[bool] = None
    supports_inline_queries: Optional[bool] = None


class Chat(TelegramModel):
    """A private chat, group, supergroup or channel."""

    id: int
    type: str
    title: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class MessageEntity(TelegramModel):
    """One special entity in a text message (command, mention, URL, …)."""

    type: str
    offset: int
    length: int
    url: Optional[str] = None
    user: Optional[User] = None
    language: Optional[str] = None


class Location(TelegramModel):
    longitude: float
    latitude: float
    horizontal_accuracy: Optional[float] = None
    live_period: Optional[int] = None
    heading: Optional[int] = None
    proximity_alert_radius: Optional[int] = None


class PollOption(TelegramModel):
    text: str
    voter_count: int


class Poll(TelegramModel):
    """State of a poll, delivered when it is stopped or its votes change."""

    id: str
    question: str
    options: List[PollOption]
    total_voter_count: int
    is_closed: bool
    is_anonymous: bool
    type: str
    allows_multiple_answers: bool
    correct_option_id: Optional[int] = None
    explanation: Optional[str] = None
    explanation_entities: Optional[List[MessageEntity]] = None
    open_period: Optional[int] = None
    close_date: Optional[int] = None


class PollAnswer(TelegramModel):
    """A user or chat changed their answer in a non-anonymous poll."""

    poll_id: str
    user: Optional[User] = None
    voter_chat: Optional[Chat] = None
    option_ids: List[int]


class Message(TelegramModel):
    """A message in any kind of chat.

    ``from`` is a Python keyword, so the sender lives in ``from_field``.
    """

    message_id: int
    date: int
    chat: Chat
    from_field: Optional[User] = Field(None, alias="from")
    sender_chat: Optional[Chat] = None
    forward_from: Optional[User] = None
    forward_from_chat: Optional[Chat] = None
    forward_date: Optional[int] = None
    reply_to_message: Optional[Message] = None
    via_bot: Optional[User] = None
    edit_date: Optional[int] = None
    media_group_id: Optional[str] = None
    author_signature: Optional[str] = None
    text: Optional[str] = None
    entities: Optional[List[MessageEntity]] = None
    caption: Optional[str] = None
    caption_entities: Optional[List[MessageEntity]] = None
    location: Optional[Location] = None
    poll: Optional[Poll] = None
    new_chat_members: Optional[List[User]] = None
    left_chat_member: Optional[User] = None


class InlineQuery(TelegramModel):
    id: str
    from_field: User = Field(..., alias="from")
    query: str
    offset: str
    chat_type: Optional[str] = None
    location: Optional[Location] = None


class ChosenInlineResult(TelegramModel):
    result_id: str
    from_field: User = Field(..., alias="from")
    query: str
    location: Optional[Location] = None
    inline_message_id: Optional[str] = None


class CallbackQuery(TelegramModel):
    """A press on an inline keyboard callback button."""

    id: str
    from_field: User = Field(..., alias="from")
    chat_instance: str
    message: Optional[Message] = None
    inline_message_id: Optional[str] = None
    data: Optional[str] = None
    game_short_name: Optional[str] = None


class ShippingAddress(TelegramModel):
    country_code: str
    state: str
    city: str
    street_line1: str
    street_line2: str
    post_code: str


class OrderInfo(TelegramModel):
    name: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None


class ShippingQuery(TelegramModel):
    id: str
    from_field: User = Field(..., alias="from")
    invoice_payload: str
    shipping_address: ShippingAddress


class PreCheckoutQuery(TelegramModel):
    id: str
    from_field: User = Field(..., alias="from")
    currency: str
    total_amount: int
    invoice_payload: str
    shipping_option_id: Optional[str] = None
    order_info: Optional[OrderInfo] = None


class Update(TelegramModel):
    """An incoming update.  At most **one** of the optional fields is set.

    An update of a kind newer than this model validates with every kind field
    left as ``None``; the unknown field is kept in ``model_extra``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    update_id: int
    message: Optional[Message] = None
    edited_message: Optional[Message] = None
    channel_post: Optional[Message] = None
    edited_channel_post: Optional[Message] = None
    inline_query: Optional[InlineQuery] = None
    chosen_inline_result: Optional[ChosenInlineResult] = None
    callback_query: Optional[CallbackQuery] = None
    shipping_query: Optional[ShippingQuery] = None
    pre_checkout_query: Optional[PreCheckoutQuery] = None
    poll: Optional[Poll] = None
    poll_answer: Optional[PollAnswer] = None

    _validation_error: Optional[ValidationError] = PrivateAttr(default=None)

    @classmethod
    def parse_lenient(cls, raw: object) -> "Update":
        """Validate *raw*, degrading to a bare update if its payload is malformed.

        A payload that fails validation is dropped and the error is kept on
        :attr:`validation_error`; the result then classifies as unknown.

        Raises:
            ValidationError: If *raw* has no integer ``update_id``.
        """
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            update_id = raw.get("update_id") if isinstance(raw, dict) else None
            if not isinstance(update_id, int) or isinstance(update_id, bool):
                raise
            update = cls(update_id=update_id)
            update._validation_error = exc
            return update

    @property
    def validation_error(self) -> Optional[ValidationError]:
        """Why the payload was dropped by :meth:`parse_lenient`, if it was."""
        return self._validation_error
