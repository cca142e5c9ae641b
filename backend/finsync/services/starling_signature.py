from __future__ import annotations

import base64
import binascii
import threading
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from finsync.config import settings
from finsync.utils.logger import logger


_PEM_HEADER = "-----BEGIN PUBLIC KEY-----"
_PEM_FOOTER = "-----END PUBLIC KEY-----"

SignatureHeaderValue = Union[str, Sequence[str], None]


def load_public_key(material: str) -> rsa.RSAPublicKey:
    """Parse Starling's webhook public key.

    Starling publishes the key as the bare base64 body of a
    SubjectPublicKeyInfo structure; a complete PEM document is accepted too.
    Raises ``ValueError`` when the material is empty, unparsable, or not an RSA
    key.
    """

    material = (material or "").strip()
    if not material:
        raise ValueError("Starling public key material is empty")

    if _PEM_HEADER not in material:
        material = f"{_PEM_HEADER}\n{material}\n{_PEM_FOOTER}"

    public_key = serialization.load_pem_public_key(material.encode("utf-8"))
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise ValueError("Starling public key must be an RSA key")
    return public_key


class PublicKeyHandle:
    """Initialize-once holder for a parsed public key.

    Parsing happens at most once per handle, under a lock; afterwards the key
    is only read, so a single handle can be shared by concurrent requests.
    Call :meth:`initialize` at startup to fail fast on bad configuration, or
    let the first :meth:`get` do it.
    """

    def __init__(self, material_provider: Callable[[], Optional[str]]):
        self._material_provider = material_provider
        self._key: Optional[rsa.RSAPublicKey] = None
        self._lock = threading.Lock()

    @classmethod
    def from_key(cls, public_key: rsa.RSAPublicKey) -> "PublicKeyHandle":
        handle = cls(lambda: None)
        handle._key = public_key
        return handle

    @property
    def initialized(self) -> bool:
        return self._key is not None

    def initialize(self) -> rsa.RSAPublicKey:
        with self._lock:
            if self._key is None:
                self._key = load_public_key(self._material_provider() or "")
                logger.info("[starling-signature] Public key loaded (%s bits)", self._key.key_size)
            return self._key

    def get(self) -> rsa.RSAPublicKey:
        key = self._key
        if key is not None:
            return key
        return self.initialize()


# Process-wide handle used by the HTTP router; initialized on app startup.
starling_public_key = PublicKeyHandle(lambda: settings.STARLING_PUBLIC_KEY)


def find_signature_header(
    header_items: Iterable[Tuple[str, str]],
    name: str,
    *,
    case_sensitive: bool = False,
) -> List[str]:
    """Collect every value sent for header ``name``.

    ``header_items`` must be the raw ``(name, value)`` pairs so repeated
    headers stay visible. With ``case_sensitive=True`` only an exact match of
    ``name`` counts.
    """

    if case_sensitive:
        return [v for k, v in header_items if k == name]
    wanted = name.lower()
    return [v for k, v in header_items if k.lower() == wanted]


def verify_signature(
    raw_body: bytes,
    signature_header_value: SignatureHeaderValue,
    public_key: rsa.RSAPublicKey,
) -> bool:
    """Check an RSA-SHA512 signature over the exact raw request body.

    Never raises: a missing, repeated or malformed header and a signature
    mismatch all return False and are logged.
    """

    if signature_header_value is not None and not isinstance(signature_header_value, str):
        values = list(signature_header_value)
        if len(values) > 1:
            logger.error(
                "[starling-signature] X-Hook-Signature header sent %s times; rejecting",
                len(values),
            )
            return False
        signature_header_value = values[0] if values else None

    if not signature_header_value:
        logger.error("[starling-signature] Missing X-Hook-Signature header")
        return False

    try:
        signature = base64.b64decode(signature_header_value, validate=True)
    except (binascii.Error, ValueError):
        logger.error("[starling-signature] X-Hook-Signature header is not valid base64")
        return False

    try:
        public_key.verify(signature, raw_body, padding.PKCS1v15(), hashes.SHA512())
    except InvalidSignature:
        logger.warning("[starling-signature] status=INVALID body_bytes=%s", len(raw_body))
        return False

    logger.info("[starling-signature] status=VALID")
    return True
