from __future__ import annotations

import hmac
import json
from hashlib import sha256

from webhook_service import signing


def test_sign_is_hex_hmac_sha256():
    payload = b'{"eventId":"evt-1"}'
    expected = hmac.new(b"secret", payload, sha256).hexdigest()
    assert signing.sign(payload, "secret") == expected
    assert signing.sign(payload.decode(), "secret") == expected


def test_verify_accepts_own_signature():
    payload = '{"a":1}'
    assert signing.verify(payload, signing.sign(payload, "k"), "k")


def test_verify_rejects_tampered_payload():
    signature = signing.sign('{"amount":100}', "k")
    assert not signing.verify('{"amount":900}', signature, "k")


def test_verify_rejects_wrong_secret():
    signature = signing.sign("payload", "right")
    assert not signing.verify("payload", signature, "wrong")


def test_verify_rejects_garbage_signature():
    assert not signing.verify("payload", "not-a-signature", "k")
    assert not signing.verify("payload", "é" * 64, "k")
    assert not signing.verify("payload", None, "k")  # type: ignore[arg-type]


def test_verify_tolerates_uppercase_hex():
    signature = signing.sign("payload", "k")
    assert signing.verify("payload", signature.upper(), "k")


def test_generate_secret_is_64_hex_chars_and_random():
    first, second = signing.generate_secret(), signing.generate_secret()
    assert len(first) == 64
    int(first, 16)
    assert first != second


def test_canonical_json_is_key_order_independent():
    a = signing.canonical_json({"b": 1, "a": {"y": "ü", "x": [1, 2]}})
    b = signing.canonical_json({"a": {"x": [1, 2], "y": "ü"}, "b": 1})
    assert a == b
    assert a == '{"a":{"x":[1,2],"y":"ü"},"b":1}'.encode("utf-8")


def test_sign_event_signs_the_canonical_bytes():
    event = {"eventType": "X", "data": {"n": 1}}
    event_bytes, signature = signing.sign_event(event, "k")
    assert json.loads(event_bytes) == event
    assert signature == signing.sign(event_bytes, "k")
