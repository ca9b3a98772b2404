"""Bearer token dependency.

Tokens are JWTs issued by the account service; this backend only reads the
`id` claim from the payload to learn which user is calling. The signature
is not checked here.
"""

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

bearer_scheme = HTTPBearer(
    auto_error=False,  # missing tokens get our own 401 body
    description="JWT whose payload carries the numeric user id",
)


def decode_user_id(token: str) -> int:
    """Return the positive integer `id` claim of a JWT, or raise ValueError."""
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        raise ValueError(f"Token cannot be decoded: {e}") from e
    user_id = payload.get("id")
    if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id < 1:
        raise ValueError("Token has no user id")
    return user_id


async def current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> int:
    """Resolve the calling user's id from the Authorization header."""
    if credentials is None:
        raise HTTPException(401, "Unauthorized: Missing or invalid token")
    try:
        return decode_user_id(credentials.credentials)
    except ValueError:
        raise HTTPException(403, "Unauthorized: Invalid token")
