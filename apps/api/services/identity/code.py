from __future__ import annotations

import secrets
import string

from services.errors import VerificationCodeError

_VERIFY_CODE_ALPHABET = string.ascii_letters + string.digits
VERIFY_CODE_LENGTH = 32


def new_verify_code() -> str:
    """Return a single-use alphanumeric code from the OS CSPRNG."""
    try:
        return "".join(
            secrets.choice(_VERIFY_CODE_ALPHABET) for _ in range(VERIFY_CODE_LENGTH)
        )
    except (OSError, NotImplementedError) as exc:
        raise VerificationCodeError("entropy source unavailable") from exc
