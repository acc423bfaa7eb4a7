"""
Minimal auth: hashed passwords and JWT bearer tokens.
The token carries the caller's identity (user id, display name, site role); the rest of the
app trusts it as given.
"""
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext
from jose import JWTError, jwt

from lastman.models import Identity, Role, User

# pbkdf2_sha256 has no 72-byte password limit and needs no native backend
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "lms-dev-secret-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def create_access_token(user: User) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"sub": user.id, "name": user.name, "role": user.role, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Identity | None:
    """Identity from a valid token, None if missing, expired or tampered."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    sub = payload.get("sub")
    if not sub:
        return None
    role = payload.get("role")
    if role not in (Role.USER.value, Role.ADMIN.value):
        role = Role.USER.value
    return Identity(user_id=sub, name=payload.get("name") or sub, role=role)
