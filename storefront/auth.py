from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt

from storefront import config


@dataclass
class CurrentUser:
    id: str
    email: str = ""
    role: str = "CUSTOMER"
    phone: str = ""
    token: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role.upper() == "ADMIN"


def decode_token(token: str) -> CurrentUser:
    claims = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    user_id = claims.get("sub") or claims.get("id")
    if not user_id:
        raise JWTError("token has no subject")
    return CurrentUser(
        id=str(user_id),
        email=claims.get("email") or "",
        role=claims.get("role") or "CUSTOMER",
        phone=claims.get("phone") or "",
        token=token,
    )


def _bearer(authorization: str) -> str:
    scheme, token = authorization.split()
    if scheme.lower() != "bearer":
        raise ValueError("not a bearer token")
    return token


def verify_token(authorization: str = Header(...)) -> CurrentUser:
    try:
        return decode_token(_bearer(authorization))
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")


def optional_user(authorization: Optional[str] = Header(None)) -> Optional[CurrentUser]:
    if not authorization:
        return None
    return verify_token(authorization)


def require_admin(user: CurrentUser = Depends(verify_token)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
