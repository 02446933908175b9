from dataclasses import dataclass
from typing import Optional

import jwt


@dataclass(frozen=True)
class Identity:
    """A user verified by the identity provider. Only the id is trusted from the token."""

    user_id: str
    email: Optional[str] = None


def decode_identity_token(
    token: str,
    secret: str,
    algorithm: str = "HS256",
    audience: Optional[str] = None,
) -> dict:
    """Decode and verify a JWT issued by the identity provider"""
    options = {"require": ["sub", "exp"], "verify_aud": audience is not None}
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            audience=audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise ValueError("Token has expired")
    except jwt.PyJWTError:
        raise ValueError("Invalid token")


def identity_from_token(
    token: str,
    secret: str,
    algorithm: str = "HS256",
    audience: Optional[str] = None,
) -> Identity:
    payload = decode_identity_token(token, secret, algorithm, audience)
    user_id = payload.get("sub")
    if not user_id:
        raise ValueError("Token has no subject")
    return Identity(user_id=str(user_id), email=payload.get("email"))
