"""
Payment and transfer reference helpers.

Payment references look like SALM-7F3A-K2QZ-9XBD:
    - 4 chars: tail of the product id
    - 4 chars: tail of the current timestamp in base 36
    - 4 chars: random uppercase alphanumerics

Buyers quote them as bank transfer narration, so extraction is
case-insensitive and tolerant of surrounding text.
"""

from __future__ import annotations

import re
import secrets
import string
import time
import uuid

from django.conf import settings

_ALPHABET = string.ascii_uppercase + string.digits
_BASE36 = string.digits + string.ascii_lowercase


def _prefix() -> str:
    return getattr(settings, "PAYMENT_REFERENCE_PREFIX", "SALM")


def _reference_pattern() -> re.Pattern:
    return re.compile(
        rf"({re.escape(_prefix())}-[A-Z0-9]{{4}}-[A-Z0-9]{{4}}-[A-Z0-9]{{4}})",
        re.IGNORECASE,
    )


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_payment_reference(product_id) -> str:
    """Build a fresh SALM-XXXX-YYYY-ZZZZ reference for a product."""
    product_part = uuid.UUID(str(product_id)).hex[-4:] if _is_uuid(product_id) else str(product_id)[-4:]
    time_part = _to_base36(int(time.time() * 1000))[-4:].rjust(4, "0")
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(4))
    return f"{_prefix()}-{product_part.upper().rjust(4, '0')}-{time_part.upper()}-{random_part}"


def _is_uuid(value) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def extract_reference(*texts: str | None) -> str | None:
    """
    Return the first payment reference found in any of the given strings,
    normalised to upper case.

    Example:
        >>> extract_reference("trf salm-7f3a-k2qz-9xbd from ADA")
        'SALM-7F3A-K2QZ-9XBD'
    """
    pattern = _reference_pattern()
    for text in texts:
        if not text:
            continue
        match = pattern.search(text)
        if match:
            return match.group(1).upper()
    return None


def transfer_reference_for(transaction_id) -> str:
    """
    Deterministic Paystack transfer reference for a Transaction.

    Every attempt for the same Transaction carries the same reference, so
    Paystack rejects a second transfer for it.
    """
    return f"payout-{uuid.UUID(str(transaction_id)).hex}"
