from __future__ import annotations

from checkin_app.models import Ok
from checkin_app.services import PassIssuer, write_qr_png


def test_issued_pass_opens_to_its_payload(cipher, codec, deriver, registration):
    issuer = PassIssuer(codec=codec, cipher=cipher, deriver=deriver)

    issued = issuer.issue(registration, "Robo Wars")

    decrypted = cipher.decrypt(issued.token)
    assert isinstance(decrypted, Ok)
    validated = codec.validate(decrypted.value)
    assert isinstance(validated, Ok)
    assert validated.value == issued.payload
    assert issued.payload.event_name == "Robo Wars"


def test_issued_code_matches_registration(cipher, codec, deriver, registration):
    issued = PassIssuer(codec=codec, cipher=cipher, deriver=deriver).issue(registration, None)

    assert issued.verification_code == deriver.code(registration.id)
    assert deriver.matches(issued.verification_code, registration.id)


def test_write_qr_png(tmp_path, cipher, codec, registration):
    token = cipher.encrypt(codec.build(registration, "Robo Wars"))

    path = write_qr_png(token, tmp_path / "passes" / "abc-123.png")

    assert path.exists()
    assert path.read_bytes().startswith(b"\x89PNG")
