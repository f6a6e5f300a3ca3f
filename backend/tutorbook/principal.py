"""Authenticated caller as forwarded by the hosting platform's identity layer."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
import json
from typing import Any, Dict, Optional, Tuple


class PrincipalDecodeError(ValueError):
    """Raised when the principal header is not base64-encoded JSON."""


@dataclass(frozen=True)
class ClientPrincipal:
    """
    Identity of the caller.

    Attributes:
        user_id: Subject id issued by the identity provider
        email: ``userDetails`` claim, the sign-in email
        roles: Roles granted by the identity provider
    """

    user_id: str
    email: Optional[str] = None
    roles: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_header(cls, header_value: str) -> "ClientPrincipal":
        """Decode the base64 JSON principal (``userId``, ``userDetails``, ``userRoles``)."""
        try:
            decoded = base64.b64decode(header_value, validate=False).decode("utf-8")
            payload: Dict[str, Any] = json.loads(decoded)
        except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
            raise PrincipalDecodeError("Malformed client principal") from exc

        if not isinstance(payload, dict):
            raise PrincipalDecodeError("Malformed client principal")
        user_id = str(payload.get("userId") or "").strip()
        if not user_id:
            raise PrincipalDecodeError("Client principal has no userId")

        roles = payload.get("userRoles") or []
        return cls(
            user_id=user_id,
            email=(payload.get("userDetails") or None),
            roles=tuple(str(role) for role in roles if role),
        )

    def to_header(self) -> str:
        body = {"userId": self.user_id, "userDetails": self.email, "userRoles": list(self.roles)}
        return base64.b64encode(json.dumps(body).encode("utf-8")).decode("ascii")
