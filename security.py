import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from bson import ObjectId
from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext

import database
from config import get_settings
from schemas import ADMIN_ROLE

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ROLE_UPDATED = "ROLE_UPDATED"

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=get_settings().BCRYPT_ROUNDS,
)


def get_jwt_secret() -> str:
    settings = get_settings()
    secret = settings.JWT_SECRET or settings.ACCESS_TOKEN_SECRET
    if not secret:
        logger.critical("No JWT_SECRET or ACCESS_TOKEN_SECRET configured")
        raise RuntimeError("JWT secret not configured")
    return secret


def hash_password(plain_password: str) -> str:
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # not a hash passlib recognises
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(days=get_settings().ACCESS_TOKEN_EXPIRE_DAYS))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, get_jwt_secret(), algorithm=ALGORITHM)


def token_for_user(user: Dict[str, Any]) -> str:
    """Issue a token carrying the account's role as it is right now."""
    return create_access_token({"sub": str(user["_id"]), "username": user["username"], "role": user.get("role", ADMIN_ROLE)})


def decode_access_token(token: str) -> Dict[str, Any]:
    payload = jwt.decode(token, get_jwt_secret(), algorithms=[ALGORITHM])
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    return {"id": payload["sub"], "username": payload.get("username"), "role": payload.get("role")}


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


def get_current_user(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")
    try:
        return decode_access_token(token)
    except JWTError as exc:
        logger.info("Token verification failed: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid token.")


def get_optional_user(authorization: Optional[str] = Header(None)) -> Optional[Dict[str, Any]]:
    token = _bearer_token(authorization)
    if not token:
        return None
    try:
        return decode_access_token(token)
    except JWTError:
        return None


def get_current_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if not ObjectId.is_valid(user["id"]):
        raise HTTPException(status_code=401, detail="Invalid token.")
    current = database.collection("user").find_one({"_id": ObjectId(user["id"])}, {"role": 1, "email": 1})
    if not current:
        raise HTTPException(status_code=401, detail="User not found.")

    role = current.get("role")
    if user.get("role") != role:
        logger.warning(
            "Role mismatch for %s: token role %r, stored role %r; re-login required",
            current.get("email"), user.get("role"), role,
        )
        raise HTTPException(
            status_code=401,
            detail={
                "message": "Your permissions have been updated. Please log in again to refresh your access.",
                "code": ROLE_UPDATED,
            },
        )
    if role != ADMIN_ROLE:
        logger.info("Access denied for %s, role %r", user.get("username"), role)
        raise HTTPException(status_code=403, detail="Access denied. Admins only.")
    return {**user, "role": role}


def owned_document(collection_name: str, label: str, gate: Callable = get_current_user) -> Callable:
    """Dependency loading the ``{id}`` record of a collection for its owner only.

    Absent records are 404; records owned by another account are 403.
    """

    def dependency(id: str, user: Dict[str, Any] = Depends(gate)) -> Dict[str, Any]:
        doc = database.collection(collection_name).find_one({"_id": database.to_oid(id)})
        if not doc:
            raise HTTPException(status_code=404, detail=f"{label} not found")
        if str(doc.get("userId")) != user["id"]:
            raise HTTPException(status_code=403, detail=f"Not authorized to modify this {label.lower()}")
        return doc

    return dependency
