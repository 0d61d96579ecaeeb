"""Postback data carried by carousel buttons.

Format: ``action=<accept|reject>&face=<face id>&inference=<inference id>``.
Ids are unsigned decimal integers, so neither ``&`` nor ``=`` can appear inside
a field value.
"""
import re
from typing import Dict

from models import ActionType, PostbackAction

# LINE rejects postback actions whose data exceeds 300 characters
POSTBACK_DATA_MAX = 300

_FIELDS = ('action', 'face', 'inference')
_DIGITS = re.compile(r'[0-9]+')


class MalformedPostbackError(ValueError):
    pass


class PostbackCodec:
    def __init__(self, max_length: int = POSTBACK_DATA_MAX):
        self.max_length = max_length

    def encode(self, action: PostbackAction) -> str:
        if action.face_id <= 0 or action.inference_id <= 0:
            raise ValueError('face_id and inference_id must be positive')
        data = f'action={ActionType(action.action).value}&face={action.face_id}&inference={action.inference_id}'
        if len(data) > self.max_length:
            raise MalformedPostbackError(f'postback data too long ({len(data)} > {self.max_length})')
        return data

    def decode(self, data: str) -> PostbackAction:
        if not isinstance(data, str) or not data:
            raise MalformedPostbackError('empty postback data')
        if len(data) > self.max_length:
            raise MalformedPostbackError('postback data too long')
        pairs = data.split('&')
        if len(pairs) != len(_FIELDS):
            raise MalformedPostbackError(f'expected {len(_FIELDS)} fields, got {len(pairs)}')
        fields: Dict[str, str] = {}
        for pair in pairs:
            key, sep, value = pair.partition('=')
            if not sep or key not in _FIELDS or key in fields:
                raise MalformedPostbackError(f'unexpected field: {pair!r}')
            fields[key] = value
        try:
            action = ActionType(fields['action'])
        except ValueError:
            raise MalformedPostbackError(f'unknown action: {fields["action"]!r}') from None
        return PostbackAction(action, self._parse_id(fields['face']), self._parse_id(fields['inference']))

    @staticmethod
    def _parse_id(value: str) -> int:
        if not _DIGITS.fullmatch(value):
            raise MalformedPostbackError(f'non-numeric id: {value!r}')
        n = int(value)
        if n <= 0:
            raise MalformedPostbackError('id must be positive')
        return n


_default = PostbackCodec()


def encode(action: PostbackAction) -> str:
    return _default.encode(action)


def decode(data: str) -> PostbackAction:
    return _default.decode(data)
