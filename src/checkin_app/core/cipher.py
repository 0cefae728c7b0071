"""Symmetric sealing of pass payloads.

Passes are Fernet tokens (AES-CBC with an HMAC-SHA256 signature and a random
IV), so the same payload encrypts to a different string on every call and a
tampered or foreign token fails authentication instead of decrypting to noise.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
from typing import Any, Mapping, Union

from cryptography.fernet import Fernet, InvalidToken

from checkin_app.models.pass_payload import QRPayload
from checkin_app.models.results import DecodeFailure, Err, Ok

logger = logging.getLogger(__name__)

PayloadLike = Union[QRPayload, Mapping[str, Any]]


def canonical_json(data: Mapping[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def derive_fernet_key(secret: str) -> bytes:
    if not secret:
        raise ValueError("A non-empty secret is required.")
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class CipherEngine:
    def __init__(self, secret: str) -> None:
        self._fernet = Fernet(derive_fernet_key(secret))

    def encrypt(self, payload: PayloadLike) -> str:
        data = payload.to_dict() if isinstance(payload, QRPayload) else dict(payload)
        token = self._fernet.encrypt(canonical_json(data).encode("utf-8"))
        return token.decode("ascii")

    def decrypt(self, text: str | bytes) -> Ok[Any] | Err[DecodeFailure]:
        """Open a pass. Never raises; any failure is returned as ``Err``."""

        try:
            if isinstance(text, str):
                token = text.strip().encode("ascii")
            elif isinstance(text, (bytes, bytearray)):
                token = bytes(text).strip()
            else:
                return Err(DecodeFailure())
            if not token:
                return Err(DecodeFailure())
            plaintext = self._fernet.decrypt(token)
            return Ok(json.loads(plaintext.decode("utf-8")))
        except InvalidToken:
            logger.info("Rejected pass: token failed authentication")
        except (UnicodeError, ValueError, TypeError, binascii.Error) as exc:
            logger.info("Rejected pass: %s", type(exc).__name__)
        return Err(DecodeFailure())
