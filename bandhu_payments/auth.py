from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt

from bandhu_payments.config import Settings, get_settings


def verify_token(authorization: str = Header(...), settings: Settings = Depends(get_settings)):
    if not settings.jwt_secret:
        raise HTTPException(status_code=500, detail="Authentication is not configured")
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("unsupported scheme")
        return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")
