import os
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

SECRET_KEYS = (
    'LINE_CHANNEL_ACCESS_TOKEN',
    'LINE_CHANNEL_SECRET',
    'RECOGNIZER_ADMIN_TOKEN',
    'TOKEN_CIPHER_KEY',
    'SENTRY_DSN',
    'REDIS_URL',
)


# Render's Secret Files feature writes plaintext files to /etc/secrets/<NAME>.
# Values found there are copied into os.environ when the variable is unset.
def load_secrets_from_files(keys: Iterable[str] = SECRET_KEYS, base_path: str = '/etc/secrets') -> None:
    for k in keys:
        if os.getenv(k) is None:
            p = os.path.join(base_path, k)
            try:
                if os.path.exists(p):
                    with open(p, 'r', encoding='utf-8') as f:
                        v = f.read().strip()
                        if v:
                            os.environ[k] = v
            except OSError:
                logger.exception('failed loading secret file %s', p)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning('invalid integer for %s, using %s', name, default)
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        logger.warning('invalid number for %s, using %s', name, default)
        return default


def _env_flag(name: str, default: str = '') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


@dataclass(frozen=True)
class Settings:
    line_channel_secret: Optional[str] = None
    line_channel_access_token: Optional[str] = None
    recognizer_endpoint: str = ''
    recognizer_admin_email: str = ''
    recognizer_admin_token: str = ''
    callback_path: str = '/callback'
    token_cipher_key: Optional[bytes] = None
    app_url: str = ''
    platform_domain: str = 'line.me'
    carousel_max_columns: int = 5
    redis_url: Optional[str] = None
    event_workers: int = 8
    enable_text_query: bool = False
    recognizer_timeout: float = 10.0
    thumbnail_hosts: Tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> 'Settings':
        key = os.getenv('TOKEN_CIPHER_KEY')
        return cls(
            line_channel_secret=os.getenv('LINE_CHANNEL_SECRET'),
            line_channel_access_token=os.getenv('LINE_CHANNEL_ACCESS_TOKEN'),
            recognizer_endpoint=os.getenv('RECOGNIZER_API_ENDPOINT', '').rstrip('/'),
            recognizer_admin_email=os.getenv('RECOGNIZER_ADMIN_EMAIL', ''),
            recognizer_admin_token=os.getenv('RECOGNIZER_ADMIN_TOKEN', ''),
            callback_path=os.getenv('CALLBACK_PATH') or '/callback',
            token_cipher_key=key.encode('utf-8') if key else None,
            app_url=os.getenv('APP_URL', '').rstrip('/'),
            platform_domain=os.getenv('PLATFORM_DOMAIN') or 'line.me',
            carousel_max_columns=_env_int('CAROUSEL_MAX_COLUMNS', 5),
            redis_url=os.getenv('REDIS_URL') or None,
            event_workers=_env_int('EVENT_WORKERS', 8),
            enable_text_query=_env_flag('ENABLE_TEXT_QUERY'),
            recognizer_timeout=_env_float('RECOGNIZER_TIMEOUT', 10.0),
            thumbnail_hosts=tuple(h.strip() for h in os.getenv('THUMBNAIL_ALLOWED_HOSTS', '').split(',') if h.strip()),
        )

    def image_hosts(self) -> Tuple[str, ...]:
        """Hosts the thumbnail proxy may fetch from; defaults to the recognizer's own host."""
        if self.thumbnail_hosts:
            return self.thumbnail_hosts
        host = urlparse(self.recognizer_endpoint).hostname
        return (host,) if host else ()

    def user_email(self, user_id: str) -> str:
        return f'{user_id}@{self.platform_domain}'
