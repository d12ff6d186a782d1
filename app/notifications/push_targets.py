"""
PushTarget: the one shape a push token takes inside the application.

Clients register tokens either as a bare string (older app builds) or as
an object such as {"token": "...", "platform": "android"}. Both are
resolved once, here, and nothing downstream inspects raw shapes.

Usage:
    from notifications.push_targets import PushTarget

    target = PushTarget.from_raw({"token": "ExponentPushToken[abc]", "platform": "ios"})
    target.device_kind  # "expo"
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from core.exceptions import ValidationError

from notifications.models import DeviceKind, DevicePlatform

EXPO_TOKEN_RE = re.compile(r"^Expo(nent)?PushToken\[[^\]]+\]$")
FCM_TOKEN_RE = re.compile(r"^[A-Za-z0-9_:\-]{100,}$")


def detect_device_kind(token: str) -> str:
    """
    Classify a token by its format.

    Raises:
        ValidationError: Token is neither an Expo nor an FCM token
    """
    if EXPO_TOKEN_RE.match(token):
        return DeviceKind.EXPO
    if FCM_TOKEN_RE.match(token):
        return DeviceKind.FCM
    raise ValidationError("Invalid push token format", error_code="INVALID_PUSH_TOKEN")


def _normalise_platform(value: Any) -> str:
    value = (str(value).strip().lower() if value else "") or DevicePlatform.UNKNOWN
    return value if value in DevicePlatform.values else DevicePlatform.UNKNOWN


@dataclass(frozen=True)
class PushTarget:
    platform: str
    device_kind: str
    token: str

    @classmethod
    def from_raw(cls, raw: Any, platform: str | None = None) -> PushTarget:
        """
        Build a PushTarget from a legacy string or a structured token object.

        The device kind is always detected from the token itself; a
        client-supplied kind is ignored.

        Raises:
            ValidationError: Missing or malformed token
        """
        if isinstance(raw, str):
            token = raw.strip()
        elif isinstance(raw, dict):
            token = str(raw.get("token") or "").strip()
            platform = raw.get("platform") or platform
        else:
            raise ValidationError("Unsupported push token shape", error_code="INVALID_PUSH_TOKEN")

        if not token:
            raise ValidationError("Push token is required", error_code="INVALID_PUSH_TOKEN")

        return cls(
            platform=_normalise_platform(platform),
            device_kind=detect_device_kind(token),
            token=token,
        )
