# via/utils/tokens.py
"""
Signed session token. The whole thread state travels inside an HS256 JWT,
so any edit to the payload breaks the signature.
"""
import jwt
from pydantic import ValidationError

from via.core.config import get_settings
from via.domain.errors import TokenError
from via.domain.models.thread import InternalThread


def encode_token(thread: InternalThread) -> str:
    settings = get_settings()
    return jwt.encode(
        {"thread": thread.model_dump(mode="json")},
        settings.token_secret,
        algorithm=settings.token_algorithm,
    )


def decode_token(token: str) -> InternalThread:
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.token_secret, algorithms=[settings.token_algorithm])
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Bad token: {e}") from e
    try:
        return InternalThread.model_validate(claims.get("thread"))
    except ValidationError as e:
        raise TokenError("Bad token payload") from e
