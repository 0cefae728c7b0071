from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import qrcode
from qrcode.constants import ERROR_CORRECT_M

from checkin_app.core import CipherEngine, CodeDeriver, PayloadCodec
from checkin_app.models import QRPayload, Registration

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class IssuedPass:
    token: str
    verification_code: str
    payload: QRPayload


class PassIssuer:
    def __init__(self, *, codec: PayloadCodec, cipher: CipherEngine, deriver: CodeDeriver) -> None:
        self._codec = codec
        self._cipher = cipher
        self._deriver = deriver

    def issue(self, registration: Registration, event_name: Optional[str], *, issued_at: Optional[int] = None) -> IssuedPass:
        payload = self._codec.build(registration, event_name, issued_at=issued_at)
        token = self._cipher.encrypt(payload)
        logger.info("Issued pass for registration %s (event %s)", registration.id, registration.event_id)
        return IssuedPass(token=token, verification_code=self._deriver.code(registration.id), payload=payload)


def write_qr_png(token: str, path: Path, *, box_size: int = 10, border: int = 4) -> Path:
    """Write the pass token as a plain black-on-white QR symbol."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    qr.add_data(token)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")
    with target.open("wb") as handle:
        image.save(handle, format="PNG")
    return target
