"""
Bearer authentication

The upstream auth layer issues tokens of the form "<auth_uid>.<signature>"
where the signature is the hex HMAC-SHA256 of the uid keyed with SECRET_KEY.
"""

import hashlib
import hmac
import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import DEFAULT_TIMEZONE, SECRET_KEY
from .database import get_db, translate_datastore_errors
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def sign_uid(auth_uid: str) -> str:
    return hmac.new(SECRET_KEY.encode("utf-8"), auth_uid.encode("utf-8"), hashlib.sha256).hexdigest()


def issue_token(auth_uid: str) -> str:
    """Token for an auth uid (used by the auth layer and by tests)"""
    return f"{auth_uid}.{sign_uid(auth_uid)}"


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def verify_token(token: str) -> str:
    """Return the auth uid of a valid token, or raise 401"""
    auth_uid, sep, signature = token.rpartition(".")
    if not sep or not auth_uid:
        logger.warning(f"⚠️ Malformed token received (length {len(token)})")
        raise HTTPException(status_code=401, detail="Invalid token format")

    if not constant_time_compare(signature, sign_uid(auth_uid)):
        logger.warning("⚠️ Token signature mismatch")
        raise HTTPException(status_code=401, detail="Invalid token signature")

    return auth_uid


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to an owner, creating the row on first sight"""
    if not credentials:
        logger.error("❌ No credentials provided")
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    auth_uid = verify_token(credentials.credentials)

    with translate_datastore_errors():
        user = db.query(User).filter(User.auth_uid == auth_uid).first()
        if user:
            return user

        logger.info(f"🆕 Creating new owner for uid {auth_uid}")
        user = User(auth_uid=auth_uid, timezone=DEFAULT_TIMEZONE)
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Created concurrently by another request
            db.rollback()
            user = db.query(User).filter(User.auth_uid == auth_uid).first()
            if not user:
                raise
        db.refresh(user)

    return user
