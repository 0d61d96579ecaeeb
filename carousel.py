import random
from typing import List, Optional, Sequence
from urllib.parse import urlencode

from linebot.models import (
    CarouselColumn as LineCarouselColumn,
    CarouselTemplate,
    MessageAction,
    PostbackAction as LinePostbackAction,
    TemplateSendMessage,
    URIAction,
)

from models import CarouselColumn, CarouselPayload, ColumnAction, InferenceCandidate, PostbackAction
from postback import PostbackCodec
from utils import truncate_chars

# LINE carousel template limits
CAROUSEL_MAX_COLUMNS = 10
TITLE_MAX = 40
TEXT_MAX = 60

DETAIL_LABEL = '\U0001f50d くわしく'
ACCEPT_LABEL = '\U0001f646 あってる'
REJECT_LABEL = '\U0001f645 ちがうよ'
REJECT_TEXT = 'ちがうよ'


class EmptyCandidateSet(Exception):
    pass


def column_title(candidate: InferenceCandidate) -> str:
    title = f'{candidate.face_id}:[{candidate.score:.5f}] {candidate.label_name}'
    if candidate.label_description:
        title += ' (' + candidate.label_description.replace('\r\n', ', ') + ')'
    return truncate_chars(title, TITLE_MAX)


def usable(candidate: InferenceCandidate) -> bool:
    return candidate.photo_image_url.startswith(('http://', 'https://'))


def column_text(candidate: InferenceCandidate) -> str:
    # LINE rejects columns with empty text
    return truncate_chars(candidate.photo_caption.replace('\n', ' '), TEXT_MAX) or '-'


class CarouselComposer:
    def __init__(self, codec: Optional[PostbackCodec] = None, thumbnail_base: str = '', rng: Optional[random.Random] = None):
        self.codec = codec or PostbackCodec()
        self.thumbnail_base = (thumbnail_base or '').rstrip('/')
        self.rng = rng or random.SystemRandom()

    def thumbnail_url(self, image_url: str) -> str:
        if not self.thumbnail_base:
            return image_url
        return f'{self.thumbnail_base}/thumbnail?' + urlencode({'image_url': image_url})

    def select(self, candidates: Sequence[InferenceCandidate], max_columns: int) -> List[InferenceCandidate]:
        """Pick an unbiased random subset, in random order, of at most max_columns candidates."""
        order = list(range(len(candidates)))
        self.rng.shuffle(order)
        num = min(max_columns, CAROUSEL_MAX_COLUMNS, len(order))
        return [candidates[i] for i in order[:num]]

    def column(self, candidate: InferenceCandidate) -> CarouselColumn:
        data = self.codec.encode(PostbackAction.accept(candidate.face_id, candidate.inference_id))
        return CarouselColumn(
            thumbnail_image_url=self.thumbnail_url(candidate.photo_image_url),
            title=column_title(candidate),
            text=column_text(candidate),
            actions=[
                ColumnAction('uri', DETAIL_LABEL, candidate.photo_source_url or candidate.photo_image_url),
                ColumnAction('postback', ACCEPT_LABEL, data),
                ColumnAction('message', REJECT_LABEL, REJECT_TEXT),
            ],
        )

    def compose(self, candidates: Sequence[InferenceCandidate], max_columns: int = 5) -> CarouselPayload:
        if max_columns < 1:
            raise ValueError('max_columns must be at least 1')
        # LINE rejects columns without a thumbnail or link
        candidates = [c for c in candidates if usable(c)]
        if not candidates:
            raise EmptyCandidateSet('no inferences to show')
        return CarouselPayload(columns=[self.column(c) for c in self.select(candidates, max_columns)])


def _line_action(action: ColumnAction):
    if action.kind == 'uri':
        return URIAction(label=action.label, uri=action.value)
    if action.kind == 'postback':
        return LinePostbackAction(label=action.label, data=action.value)
    return MessageAction(label=action.label, text=action.value)


def to_message(payload: CarouselPayload) -> TemplateSendMessage:
    columns = [
        LineCarouselColumn(
            thumbnail_image_url=col.thumbnail_image_url,
            title=col.title,
            text=col.text,
            actions=[_line_action(a) for a in col.actions],
        )
        for col in payload.columns
    ]
    return TemplateSendMessage(alt_text=payload.alt_text, template=CarouselTemplate(columns=columns))
