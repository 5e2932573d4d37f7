import hashlib
import hmac

SIGNATURE_HEADER = "X-Razorpay-Signature"


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: str, secret: str) -> bool:
    """
    True if `signature` is the hex HMAC-SHA256 of the exact request bytes.
    The body must be the untouched stream; any re-serialization breaks the match.
    """
    if not signature or not secret:
        return False
    expected = compute_signature(raw_body, secret).encode("ascii")
    # Headers arrive latin-1 decoded; compare bytes so non-ASCII input is a mismatch
    received = signature.strip().encode("utf-8", "surrogateescape")
    return hmac.compare_digest(expected, received)
