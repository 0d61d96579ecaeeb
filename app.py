#!/usr/bin/env python3
import os
import logging
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import urlparse

import requests
from flask import Flask, Response, abort, request
from linebot import LineBotApi, WebhookHandler
from linebot.exceptions import InvalidSignatureError

from carousel import CarouselComposer
from config import Settings, load_secrets_from_files
from credentials import CredentialService, build_store
from handlers import EventRouter, make_provisioner, register_handlers
from postback import PostbackCodec
from recognizer import RecognitionGateway
from sentry_init import init_sentry
from token_cipher import CryptoError, TokenCipher
from utils import make_thumbnail

load_secrets_from_files()

# logging configuration (env: LOG_LEVEL, LOG_FILE)
log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
log_file = os.getenv('LOG_FILE')
if log_file:
    log_handlers = [logging.FileHandler(log_file), logging.StreamHandler()]
else:
    log_handlers = [logging.StreamHandler()]
logging.basicConfig(level=getattr(logging, log_level, logging.INFO),
                    format='%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s', handlers=log_handlers)
logger = logging.getLogger(__name__)

try:
    if init_sentry():
        logger.info('Sentry initialized')
except Exception:
    logger.exception('failed to init sentry')

settings = Settings.from_env()


def build_router(settings: Settings, line_bot_api: LineBotApi) -> EventRouter:
    cipher = TokenCipher(settings.token_cipher_key)
    provisioner = make_provisioner(line_bot_api, lambda: RecognitionGateway.for_admin(settings))
    credentials = CredentialService(build_store(settings), cipher, provisioner)
    codec = PostbackCodec()
    return EventRouter(
        line_bot_api,
        credentials,
        lambda user_id, token: RecognitionGateway.for_user(settings, user_id, token),
        CarouselComposer(codec, thumbnail_base=settings.app_url),
        codec,
        max_columns=settings.carousel_max_columns,
        enable_text_query=settings.enable_text_query,
        executor=ThreadPoolExecutor(max_workers=settings.event_workers, thread_name_prefix='event'),
    )


app = Flask(__name__)

line_bot_api = LineBotApi(settings.line_channel_access_token) if settings.line_channel_access_token else None
handler = WebhookHandler(settings.line_channel_secret) if settings.line_channel_secret else None
router = None

if line_bot_api and handler:
    try:
        router = build_router(settings, line_bot_api)
    except CryptoError:
        logger.exception('token cipher unavailable, webhook disabled')
    register_handlers(handler, router)


@app.route('/healthz', methods=['GET'])
def healthz():
    return 'ok', 200


@app.route(settings.callback_path, methods=['POST'])
def callback():
    if not handler or not router:
        abort(500)
    signature = request.headers.get('X-Line-Signature', '')
    body = request.get_data(as_text=True)
    try:
        handler.handle(body, signature)
    except InvalidSignatureError:
        logger.warning('parse request error: invalid signature')
        abort(500)
    except ValueError:
        logger.exception('parse request error')
        abort(500)
    return 'OK', 200


def allowed_image_url(url: str) -> bool:
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        return False
    return parsed.hostname in settings.image_hosts()


@app.route('/thumbnail', methods=['GET'])
def thumbnail():
    image_url = request.args.get('image_url', '')
    if not allowed_image_url(image_url):
        abort(400)
    try:
        resp = requests.get(image_url, timeout=settings.recognizer_timeout)
        resp.raise_for_status()
        data, mime = make_thumbnail(resp.content)
    except requests.RequestException:
        logger.warning('thumbnail fetch failed: %s', image_url)
        abort(502)
    except OSError:
        # Pillow raises UnidentifiedImageError (an OSError) for non-images
        logger.warning('thumbnail decode failed: %s', image_url)
        abort(502)
    return Response(data, mimetype=mime, headers={'Cache-Control': 'public, max-age=86400'})


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 5000)))
