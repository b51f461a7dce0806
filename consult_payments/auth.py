from fastapi import Header
from jose import jwt, JWTError

from consult_payments.config import get_jwt_secret
from consult_payments.errors import AuthenticationError


def get_current_user_id(authorization: str = Header(None)) -> str:
    """Verify the bearer token and return the caller's user id."""
    secret = get_jwt_secret()
    if not authorization or not secret:
        raise AuthenticationError()

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError()

    try:
        claims = jwt.decode(parts[1], secret, algorithms=["HS256"])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")

    user_id = claims.get("userId") or claims.get("sub")
    if not user_id:
        raise AuthenticationError("Token carries no user")
    return str(user_id)
