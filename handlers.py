import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, Optional

from linebot import LineBotApi
from linebot.models import TextSendMessage

import events
from carousel import REJECT_TEXT, CarouselComposer, EmptyCandidateSet, to_message
from credentials import CredentialService
from models import ActionType
from postback import MalformedPostbackError, PostbackCodec
from recognizer import RecognitionGateway, RecognizerError
from sentry_init import capture_exception, tag_event
from token_cipher import CryptoError
from utils import detect_image_mime, hash_user, read_content_bytes, safe_log_event

logger = logging.getLogger(__name__)

ACCEPTED_TEXT = 'ID:{face_id} を更新しました \U0001f646'
REJECTED_TEXT = 'ID:{face_id} を更新しました \U0001f645'
FAILURE_TEXT = '処理できませんでした\U0001f61e'
NO_FACE_TEXT = '顔が見つかりませんでした\U0001f914'
NO_INFERENCE_TEXT = '候補が見つかりませんでした\U0001f914'

GatewayFactory = Callable[[str, str], RecognitionGateway]


class UnauthorizedSource(Exception):
    pass


def make_provisioner(line_bot_api: LineBotApi, admin_gateway: Callable[[], RecognitionGateway]) -> Callable[[str], str]:
    """Return a provisioner that registers a LINE user with the recognizer as admin."""
    def provision(user_id: str) -> str:
        profile = line_bot_api.get_profile(user_id)
        return admin_gateway().register_user(user_id, profile.display_name)
    return provision


class EventRouter:
    """Dispatch webhook events, one independent task per event."""

    def __init__(self, line_bot_api: LineBotApi, credentials: CredentialService, gateway_factory: GatewayFactory,
                 composer: CarouselComposer, codec: Optional[PostbackCodec] = None, *, max_columns: int = 5,
                 enable_text_query: bool = False, executor: Optional[Executor] = None):
        self.line_bot_api = line_bot_api
        self.credentials = credentials
        self.gateway_factory = gateway_factory
        self.composer = composer
        self.codec = codec or composer.codec
        self.max_columns = max_columns
        self.enable_text_query = enable_text_query
        self.executor = executor or ThreadPoolExecutor(max_workers=8, thread_name_prefix='event')

    def submit(self, event) -> Future:
        return self.executor.submit(self.handle, event)

    def handle(self, event) -> None:
        ev = events.from_line_event(event)
        try:
            if isinstance(ev, events.PostbackEvent):
                self.on_postback(ev)
            elif isinstance(ev, events.UnknownEvent):
                logger.info('not follow/message/postback event: %s (source: %s)', ev.event_type, ev.source.type)
            elif not ev.source.is_user:
                logger.info('skipping %s from %s source', type(ev).__name__, ev.source.type)
            elif isinstance(ev, events.FollowEvent):
                self.on_follow(ev)
            elif isinstance(ev, events.ImageMessageEvent):
                self.on_image(ev)
            elif isinstance(ev, events.TextMessageEvent):
                self.on_text(ev)
            else:
                logger.debug('ignoring %s message', getattr(ev, 'message_type', '?'))
        except Exception as e:
            logger.exception('event handling failed')
            capture_exception(e)

    def _gateway(self, user_id: str) -> RecognitionGateway:
        credential = self.credentials.resolve(user_id)
        return self.gateway_factory(user_id, credential.service_token)

    def _reply(self, reply_token: Optional[str], message) -> bool:
        if not reply_token:
            return False
        try:
            self.line_bot_api.reply_message(reply_token, message)
        except Exception as e:
            logger.exception('send message error')
            capture_exception(e)
            return False
        return True

    def _reply_carousel(self, reply_token: Optional[str], payload) -> None:
        # a refused template leaves the reply token unused
        if not self._reply(reply_token, to_message(payload)):
            self._reply_text(reply_token, FAILURE_TEXT)

    def _reply_text(self, reply_token: Optional[str], text: str) -> None:
        self._reply(reply_token, TextSendMessage(text=text))

    def on_follow(self, ev: events.FollowEvent) -> None:
        tag_event('follow', hash_user(ev.source.user_id))
        try:
            self.credentials.resolve(ev.source.user_id)
        except Exception as e:
            logger.exception('failed to provision recognizer token')
            capture_exception(e)
            return
        safe_log_event(logger, 'follow_provisioned', user_id=ev.source.user_id, event_type='follow')

    def on_image(self, ev: events.ImageMessageEvent) -> None:
        user_id = ev.source.user_id
        tag_event('image', hash_user(user_id))
        try:
            data = read_content_bytes(self.line_bot_api.get_message_content(ev.message_id))
            if not data:
                raise ValueError('empty image content')
            safe_log_event(logger, 'received_image', user_id=user_id, event_type='image', image_size=len(data))
            candidates = self._gateway(user_id).recognize(data, detect_image_mime(data) or 'image/jpeg')
            payload = self.composer.compose(candidates, self.max_columns)
        except EmptyCandidateSet:
            self._reply_text(ev.reply_token, NO_FACE_TEXT)
            return
        except Exception as e:
            logger.exception('recognize image error')
            capture_exception(e)
            self._reply_text(ev.reply_token, FAILURE_TEXT)
            return
        self._reply_carousel(ev.reply_token, payload)

    def on_text(self, ev: events.TextMessageEvent) -> None:
        text = ev.text.strip()
        if not self.enable_text_query or text == REJECT_TEXT:
            return
        tag_event('text', hash_user(ev.source.user_id))
        query = '' if text == 'all' else text
        try:
            gateway = self._gateway(ev.source.user_id)
            labels = gateway.list_labels(query)
            if query and not labels:
                raise EmptyCandidateSet(f'no labels match {query!r}')
            candidates = gateway.list_inferences([label.id for label in labels])
            payload = self.composer.compose(candidates, self.max_columns)
        except EmptyCandidateSet:
            self._reply_text(ev.reply_token, NO_INFERENCE_TEXT)
            return
        except Exception as e:
            logger.exception('label query error')
            capture_exception(e)
            self._reply_text(ev.reply_token, FAILURE_TEXT)
            return
        self._reply_carousel(ev.reply_token, payload)

    def handle_postback(self, ev: events.PostbackEvent) -> str:
        """Apply a postback action and return the reply text.

        Raises UnauthorizedSource before touching the recognizer when the event
        did not come from an individual user.
        """
        if not ev.source.is_user:
            raise UnauthorizedSource(f'postback not from user: {ev.source.type}')
        user_id = ev.source.user_id
        tag_event('postback', hash_user(user_id))
        logger.info('got postback: %s', ev.data)
        try:
            action = self.codec.decode(ev.data)
            gateway = self._gateway(user_id)
            if action.action is ActionType.ACCEPT:
                gateway.accept_inference(action.inference_id)
                return ACCEPTED_TEXT.format(face_id=action.face_id)
            gateway.reject_inference(action.inference_id)
            return REJECTED_TEXT.format(face_id=action.face_id)
        except (MalformedPostbackError, RecognizerError, CryptoError) as e:
            logger.warning('postback %r failed: %s', ev.data, e)
            return FAILURE_TEXT

    def on_postback(self, ev: events.PostbackEvent) -> None:
        try:
            text = self.handle_postback(ev)
        except UnauthorizedSource as e:
            logger.warning('%s', e)
            return
        except Exception as e:
            logger.exception('postback handling error')
            capture_exception(e)
            text = FAILURE_TEXT
        self._reply_text(ev.reply_token, text)


def register_handlers(handler, router: EventRouter) -> None:
    if not handler or not router:
        return

    @handler.default()
    def on_event(event):
        router.submit(event)
