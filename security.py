import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import ACCESS_TOKEN_EXPIRE_MINUTES, ADMIN_USERNAMES, ALGORITHM, SECRET_KEY

logger = logging.getLogger(__name__)

# Use pbkdf2_sha256 to avoid bcrypt backend issues in some environments
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
bearer = HTTPBearer(auto_error=False)

# jti values of tokens that were logged out
_revoked = set()
_revoked_lock = threading.Lock()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # stored value is not a recognised hash
        return False


def role_for(username: str) -> str:
    return "admin" if username in ADMIN_USERNAMES else "user"


def create_access_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes or ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature, expiry and revocation; raises JWTError on failure"""
    claims = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    if "id" not in claims:
        raise JWTError("Token has no subject")
    with _revoked_lock:
        if claims.get("jti") in _revoked:
            raise JWTError("Token has been revoked")
    return claims


def revoke_token(claims: dict) -> None:
    with _revoked_lock:
        _revoked.add(claims.get("jti"))


def get_token_claims(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> dict:
    """Claims of the bearer token; 401 when absent, 403 when it does not verify"""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Missing token")
    try:
        return decode_access_token(credentials.credentials)
    except JWTError as e:
        logger.info("Rejected token: %s", e)
        raise HTTPException(status_code=403, detail="Invalid or expired token")


def get_optional_claims(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Optional[dict]:
    if credentials is None or not credentials.credentials:
        return None
    try:
        return decode_access_token(credentials.credentials)
    except JWTError:
        return None
