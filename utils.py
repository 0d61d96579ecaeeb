import hashlib
import logging
import os
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image

ELLIPSIS = '…'

logger = logging.getLogger(__name__)


def truncate_chars(text: str, limit: int, marker: str = ELLIPSIS) -> str:
    """Shorten text to at most `limit` characters, ending with `marker` when cut.

    Counts code points, not bytes, so multi-byte text is cut on character
    boundaries.
    """
    if not text:
        return ''
    if len(text) <= limit:
        return text
    return text[: max(limit - len(marker), 0)] + marker


def read_content_bytes(content) -> Optional[bytes]:
    """Normalize return types of LineBotApi.get_message_content to bytes.

    Handles bytes, objects exposing .content, .iter_content(chunk_size) or
    .read(), and plain iterables of byte chunks. Returns None when nothing
    usable was found.
    """
    if isinstance(content, (bytes, bytearray)):
        return bytes(content)

    c = getattr(content, 'content', None)
    if isinstance(c, (bytes, bytearray)):
        return bytes(c)

    if hasattr(content, 'iter_content'):
        parts = [bytes(chunk) for chunk in content.iter_content(1024) if chunk]
        return b''.join(parts) if parts else None

    if hasattr(content, 'read'):
        data = content.read()
        if isinstance(data, (bytes, bytearray)):
            return bytes(data)
        return None

    if hasattr(content, '__iter__') and not isinstance(content, (str, dict)):
        parts = [bytes(part) for part in content if isinstance(part, (bytes, bytearray))]
        return b''.join(parts) if parts else None
    return None


def detect_image_mime(data: bytes) -> Optional[str]:
    if data.startswith(b'\xff\xd8\xff'):
        return 'image/jpeg'
    if data.startswith(b'\x89PNG\r\n\x1a\n'):
        return 'image/png'
    return None


def make_thumbnail(image_bytes: bytes, max_dim: int = None, quality: int = None) -> Tuple[bytes, str]:
    """Resize an image to a JPEG thumbnail. Returns (bytes, 'image/jpeg')."""
    if max_dim is None:
        try:
            max_dim = int(os.getenv('THUMBNAIL_MAX_DIM_PX', '1024'))
        except ValueError:
            max_dim = 1024
    if quality is None:
        try:
            quality = int(os.getenv('THUMBNAIL_JPEG_QUALITY', '85'))
        except ValueError:
            quality = 85

    with BytesIO(image_bytes) as inp:
        img = Image.open(inp)
        if img.mode in ('RGBA', 'LA'):
            bg = Image.new('RGB', img.size, (255, 255, 255))
            bg.paste(img, mask=img.split()[-1])
            img = bg
        else:
            img = img.convert('RGB')
        img.thumbnail((max_dim, max_dim), Image.LANCZOS)
        out = BytesIO()
        img.save(out, format='JPEG', quality=quality, optimize=True)
        return out.getvalue(), 'image/jpeg'


def hash_user(user_id: str) -> str:
    return hashlib.sha256(user_id.encode('utf-8')).hexdigest()[:16]


def safe_log_event(logger: logging.Logger, message: str, **kwargs) -> None:
    """Log an event without dumping sensitive payloads. kwargs should only contain non-sensitive tags."""
    allowed = {k: v for k, v in kwargs.items() if k in ('user_id', 'event_type', 'image_size', 'source_type')}
    logger.info('%s %s', message, allowed)
