import hashlib
import hmac

from backend.app.billing import HmacWebhookVerifier, verify_signature
from backend.app.billing.verification import compute_signature

SECRET = "whsec_verification"
BODY = b'{"meta":{"event_name":"subscription_created"},"data":{"id":"1"}}'


def test_compute_signature_matches_hmac_sha256():
    expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
    assert compute_signature(BODY, SECRET) == expected


def test_bare_hex_signature_verifies():
    assert verify_signature(BODY, compute_signature(BODY, SECRET), SECRET)


def test_prefixed_and_uppercase_signatures_verify():
    digest = compute_signature(BODY, SECRET)
    assert verify_signature(BODY, f"sha256={digest}", SECRET)
    assert verify_signature(BODY, f"SHA256={digest.upper()}", SECRET)
    assert verify_signature(BODY, f"  {digest}  ", SECRET)


def test_tampered_body_fails():
    signature = compute_signature(BODY, SECRET)
    assert not verify_signature(BODY + b" ", signature, SECRET)


def test_wrong_secret_fails():
    signature = compute_signature(BODY, "other-secret")
    assert not verify_signature(BODY, signature, SECRET)


def test_missing_header_or_secret_fails_closed():
    signature = compute_signature(BODY, SECRET)
    assert not verify_signature(BODY, None, SECRET)
    assert not verify_signature(BODY, "", SECRET)
    assert not verify_signature(BODY, signature, None)
    assert not verify_signature(BODY, signature, "")


def test_garbage_header_fails():
    assert not verify_signature(BODY, "sha256=not-hex-at-all", SECRET)
    assert not verify_signature(BODY, "sha256=é", SECRET)


def test_verifier_without_secret_rejects_everything():
    verifier = HmacWebhookVerifier(None)
    assert not verifier.verify(BODY, compute_signature(BODY, ""))
    assert not verifier.verify(BODY, compute_signature(BODY, SECRET))


def test_verifier_with_secret_accepts_valid_signature():
    verifier = HmacWebhookVerifier(SECRET)
    assert verifier.verify(BODY, compute_signature(BODY, SECRET))
