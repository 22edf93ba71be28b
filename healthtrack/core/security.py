from datetime import timedelta
from typing import Any, Union
from jose import jwt, JWTError
from healthtrack.core.config import settings
from healthtrack.core.exceptions import Unauthenticated
from healthtrack.utils.timezone import now_local

# Export the algorithm constant for use in other modules
ALGORITHM = settings.ALGORITHM


def create_access_token(subject: Union[str, Any], expires_delta: timedelta = None) -> str:
    """Mint a bearer token for `subject`.

    Tokens are normally issued by the identity provider; this exists for local
    development and the test suite.
    """
    if expires_delta:
        expire = now_local() + expires_delta
    else:
        expire = now_local() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {"exp": expire, "sub": str(subject)}
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def decode_subject(token: str) -> str:
    """Return the user id carried in the token's `sub` claim"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise Unauthenticated("Could not validate credentials")
    subject = payload.get("sub")
    if not subject:
        raise Unauthenticated("Token has no subject")
    return str(subject)
