"""
Ingest Service - decoding and authenticating station uploads

Stations push either query strings (GET) or JSON / form bodies (POST).
Bodies that fail to decode become an empty payload; only an unknown
content type is rejected.
"""

import json
import logging
import math
import secrets
from typing import Any, Mapping
from urllib.parse import parse_qsl

from wxstation.core.config import Settings
from wxstation.core.errors import WxStationError

logger = logging.getLogger(__name__)

ECOWITT = "ecowitt"
WUNDERGROUND = "wunderground"
GENERIC = "generic"

CREDENTIAL_FIELDS = {"passkey", "password"}


class UnsupportedMediaType(WxStationError):
    def __init__(self, content_type: str):
        super().__init__(f"unsupported content-type: {content_type}")
        self.content_type = content_type


def _finite_float(text: str) -> float | None:
    value = float(text)
    return value if math.isfinite(value) else None


def decode_body(content_type: str | None, body: bytes) -> dict[str, Any]:
    """Decode a POST body into a flat dict."""
    media_type = (content_type or "").split(";")[0].strip().lower()
    if not media_type:
        if body.strip():
            raise UnsupportedMediaType("")
        return {}

    if media_type == "application/json" or media_type.endswith("+json"):
        if not body.strip():
            return {}
        try:
            # NaN / Infinity literals and overflowing numbers are not valid readings
            data = json.loads(body, parse_constant=lambda _: None, parse_float=_finite_float)
        except ValueError as exc:
            logger.warning("Malformed JSON body ignored: %s", exc)
            return {}
        return data if isinstance(data, dict) else {}

    if media_type == "application/x-www-form-urlencoded":
        text = body.decode("utf-8", errors="replace")
        return dict(parse_qsl(text, keep_blank_values=True))

    raise UnsupportedMediaType(media_type)


def merge_params(query: Mapping[str, Any], body: Mapping[str, Any]) -> dict[str, Any]:
    """Query parameters overlaid by body fields."""
    params = dict(query)
    params.update(body)
    return params


def _lookup(params: Mapping[str, Any], name: str) -> Any:
    for key, value in params.items():
        if str(key).lower() == name:
            return value
    return None


def _matches(provided: Any, expected: str) -> bool:
    return secrets.compare_digest(str(provided).encode(), expected.encode())


def is_authorized(params: Mapping[str, Any], protocol: str, settings: Settings) -> bool:
    """Check the shared secret for the given protocol.

    Credentials are verified only when present, unless require_auth is set
    and a secret is configured.
    """
    if protocol == WUNDERGROUND:
        station_id = _lookup(params, "id")
        password = _lookup(params, "password")
        if not settings.station_key:
            return True
        if password is None:
            return not settings.require_auth
        if settings.station_id and (station_id is None or not _matches(station_id, settings.station_id)):
            return False
        return _matches(password, settings.station_key)

    passkey = _lookup(params, "passkey")
    if not settings.ecowitt_passkey:
        return True
    if passkey is None:
        return not settings.require_auth
    return _matches(passkey, settings.ecowitt_passkey)


def redact(params: Mapping[str, Any]) -> dict[str, Any]:
    """Drop shared secrets before a payload is stored."""
    return {key: value for key, value in params.items() if str(key).lower() not in CREDENTIAL_FIELDS}
