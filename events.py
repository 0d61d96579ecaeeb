"""Typed view of inbound LINE webhook events.

Each SDK event is converted into exactly one of the variants below; the router
dispatches on the variant type and every variant carries only the fields that
are meaningful for its kind.
"""
from dataclasses import dataclass
from typing import Any, Optional, Union

SOURCE_USER = 'user'
SOURCE_GROUP = 'group'
SOURCE_ROOM = 'room'


@dataclass(frozen=True)
class Source:
    type: str
    user_id: Optional[str] = None

    @property
    def is_user(self) -> bool:
        return self.type == SOURCE_USER and bool(self.user_id)


@dataclass(frozen=True)
class FollowEvent:
    source: Source
    reply_token: Optional[str] = None


@dataclass(frozen=True)
class ImageMessageEvent:
    source: Source
    reply_token: Optional[str]
    message_id: str


@dataclass(frozen=True)
class TextMessageEvent:
    source: Source
    reply_token: Optional[str]
    text: str


@dataclass(frozen=True)
class OtherMessageEvent:
    source: Source
    reply_token: Optional[str]
    message_type: str


@dataclass(frozen=True)
class PostbackEvent:
    source: Source
    reply_token: Optional[str]
    data: str


@dataclass(frozen=True)
class UnknownEvent:
    source: Source
    event_type: str


Event = Union[FollowEvent, ImageMessageEvent, TextMessageEvent, OtherMessageEvent, PostbackEvent, UnknownEvent]


def _source(raw: Any) -> Source:
    if raw is None:
        return Source(type='unknown')
    return Source(type=getattr(raw, 'type', None) or 'unknown', user_id=getattr(raw, 'user_id', None))


def from_line_event(event: Any) -> Event:
    """Convert a line-bot-sdk event (or a duck-typed equivalent) into a variant."""
    source = _source(getattr(event, 'source', None))
    reply_token = getattr(event, 'reply_token', None)
    event_type = getattr(event, 'type', None) or ''

    if event_type == 'follow':
        return FollowEvent(source, reply_token)
    if event_type == 'message':
        message = getattr(event, 'message', None)
        message_type = getattr(message, 'type', None) or ''
        if message_type == 'image':
            return ImageMessageEvent(source, reply_token, str(message.id))
        if message_type == 'text':
            return TextMessageEvent(source, reply_token, getattr(message, 'text', '') or '')
        return OtherMessageEvent(source, reply_token, message_type)
    if event_type == 'postback':
        postback = getattr(event, 'postback', None)
        return PostbackEvent(source, reply_token, getattr(postback, 'data', '') or '')
    return UnknownEvent(source, event_type or 'unknown')
