import hmac
import hashlib
import logging
from typing import Optional

from fastapi import HTTPException, Request, Header

from lifo_queue.settings import settings

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signal-Signature"

def sign_body(key: str, body: bytes) -> str:
    return hmac.new(key.encode("utf-8"), body, hashlib.sha256).hexdigest()

class SignatureVerifier:
    """
    Verifies the HMAC-SHA256 signature a transport puts on each signal.

    Without a signing key (argument or SIGNAL_SIGNING_KEY) every request
    is accepted.
    """
    def __init__(self, signing_key: Optional[str] = None):
        self.signing_key = signing_key

    async def __call__(self, request: Request, x_signature: Optional[str] = Header(default=None, alias=SIGNATURE_HEADER)):
        key = self.signing_key or settings.SIGNAL_SIGNING_KEY
        if not key:
            return

        if not x_signature:
            raise HTTPException(status_code=401, detail="Missing Signature")

        body = await request.body()
        computed = sign_body(key, body)

        if not hmac.compare_digest(computed, x_signature):
            logger.warning("Rejected signal with invalid signature from %s", request.client.host if request.client else "?")
            raise HTTPException(status_code=401, detail="Invalid Signature")
