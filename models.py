from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class ActionType(str, Enum):
    ACCEPT = 'accept'
    REJECT = 'reject'


@dataclass(frozen=True)
class PostbackAction:
    action: ActionType
    face_id: int
    inference_id: int

    @classmethod
    def accept(cls, face_id: int, inference_id: int) -> 'PostbackAction':
        return cls(ActionType.ACCEPT, face_id, inference_id)

    @classmethod
    def reject(cls, face_id: int, inference_id: int) -> 'PostbackAction':
        return cls(ActionType.REJECT, face_id, inference_id)


@dataclass(frozen=True)
class UserCredential:
    user_id: str
    service_token: str
    encrypted_at_rest: bool = True


@dataclass(frozen=True)
class Label:
    id: int
    name: str
    description: Optional[str] = None


@dataclass(frozen=True)
class InferenceCandidate:
    inference_id: int
    face_id: int
    label_id: int
    label_name: str
    score: float
    label_description: Optional[str] = None
    photo_caption: str = ''
    photo_image_url: str = ''
    photo_source_url: str = ''


@dataclass(frozen=True)
class ColumnAction:
    # kind is one of 'uri', 'postback', 'message'; value is the uri, data or text
    kind: str
    label: str
    value: str


@dataclass(frozen=True)
class CarouselColumn:
    thumbnail_image_url: str
    title: str
    text: str
    actions: List[ColumnAction] = field(default_factory=list)


@dataclass(frozen=True)
class CarouselPayload:
    columns: List[CarouselColumn]
    alt_text: str = 'template message'
