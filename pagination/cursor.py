"""Continuation token of a keyset scan."""
import base64
import json
from dataclasses import dataclass
from typing import Any

from synthesis.predicates import decode_value, encode_value


@dataclass(frozen=True)
class Cursor:
    """Sort key of the last row of a page: its sort field value and unique id."""
    value: Any
    id: str

    def to_dict(self):
        return {'value': self.value, 'id': self.id}

    @classmethod
    def from_dict(cls, data):
        return cls(data['value'], str(data['id']))

    def encode(self):
        """Opaque URL-safe token."""
        payload = json.dumps({'value': encode_value(self.value), 'id': self.id}, separators=(',', ':'))
        return base64.urlsafe_b64encode(payload.encode('utf-8')).decode('ascii')

    @classmethod
    def decode(cls, token):
        data = json.loads(base64.urlsafe_b64decode(token.encode('ascii')).decode('utf-8'))
        return cls(decode_value(data['value']), str(data['id']))
