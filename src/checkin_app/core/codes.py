from __future__ import annotations

import hashlib
import hmac
import re

CODE_LENGTH = 8
_CODE_PATTERN = re.compile(r"^[A-Z0-9]{8}$")
_SEPARATORS = re.compile(r"[\s\-]+")


def normalize(typed: str) -> str:
    return _SEPARATORS.sub("", typed or "").upper()


def is_well_formed(code: str) -> bool:
    return bool(_CODE_PATTERN.match(code or ""))


class CodeDeriver:
    """Derive the short verification code printed on a pass.

    The code is the first eight hex digits of SHA-256 over the registration id
    followed by the secret. It is recomputed whenever it is needed and is never
    written to storage.
    """

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("A non-empty secret is required.")
        self._secret = secret

    def code(self, registration_id: str) -> str:
        digest = hashlib.sha256((registration_id + self._secret).encode("utf-8")).hexdigest()
        return digest[:CODE_LENGTH].upper()

    def matches(self, typed: str, registration_id: str) -> bool:
        candidate = normalize(typed)
        if not is_well_formed(candidate):
            return False
        return hmac.compare_digest(candidate, self.code(registration_id))
