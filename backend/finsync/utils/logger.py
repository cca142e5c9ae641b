import logging
import sys
from typing import Any, Dict, Iterable, Tuple

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger("finsync")

REDACTED = "***REDACTED***"


def sanitize_headers(items: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """Normalize HTTP headers for storage.

    Keys are lower-cased and sensitive values (Authorization, *token*,
    *secret*) are redacted so stored events never leak credentials. Repeated
    headers are kept as a list in arrival order.
    """

    headers: Dict[str, Any] = {}
    for k, v in items:
        lk = k.lower()
        if lk == "authorization" or "token" in lk or "secret" in lk:
            v = REDACTED
        if lk in headers:
            existing = headers[lk]
            if isinstance(existing, list):
                existing.append(v)
            else:
                headers[lk] = [existing, v]
        else:
            headers[lk] = v
    return headers
