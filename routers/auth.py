import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import EmailStr, Field, ValidationError
from pymongo.errors import DuplicateKeyError

import database
from schemas import ADMIN_ROLE, Document, PortfolioData, User
from security import get_current_admin, get_current_user, get_optional_user, hash_password, token_for_user, verify_password
from services import portfolio

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


class RegisterRequest(Document):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=6)


class AdminRegisterRequest(RegisterRequest):
    portfolio_data: Optional[Dict[str, Any]] = None


class LoginRequest(Document):
    email: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class PortfolioUpdate(Document):
    portfolio_data: Dict[str, Any]


class ChangePasswordRequest(Document):
    current_password: str
    new_password: str = Field(..., min_length=6)


def _portfolio_url(request: Request, username: str) -> str:
    return f"{str(request.base_url).rstrip('/')}/{username}"


def _create_account(username: str, email: str, password: str, data: Dict[str, Any]) -> Dict[str, Any]:
    users = database.collection("user")
    if users.find_one({"$or": [{"email": email}, {"username": username}]}):
        raise HTTPException(status_code=409, detail="User already exists with this email or username")

    try:
        profile = PortfolioData(**data)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail={"message": "Invalid portfolio data", "errors": exc.errors(include_url=False, include_context=False)})

    user = User(
        username=username,
        email=email,
        password=hash_password(password),
        role=ADMIN_ROLE,
        portfolio_data=profile,
    )
    try:
        user_id = database.create_document("user", user)
    except DuplicateKeyError:
        # lost a race with a concurrent registration
        raise HTTPException(status_code=409, detail="User already exists with this email or username")
    logger.info("Registered account %s", username)
    return users.find_one({"_id": database.to_oid(user_id)})


def _session_response(request: Request, user: Dict[str, Any], message: str) -> Dict[str, Any]:
    return {
        "message": message,
        "token": token_for_user(user),
        "user": portfolio.account_view(user),
        "portfolioUrl": _portfolio_url(request, user["username"]),
    }


@router.post("/admin/register", status_code=201)
def register_admin(payload: AdminRegisterRequest, request: Request):
    data = payload.portfolio_data or {}
    if not data.get("fullName"):
        raise HTTPException(status_code=400, detail="Full name is required for portfolio setup")
    data = {**data}
    data.setdefault("contactEmail", payload.email)
    user = _create_account(payload.username, payload.email, payload.password, data)
    return _session_response(request, user, "Admin registered successfully")


@router.post("/register", status_code=201)
def register(payload: RegisterRequest, request: Request):
    data = portfolio.default_portfolio_data(payload.username, payload.email)
    user = _create_account(payload.username, payload.email, payload.password, data)
    return _session_response(request, user, "User registered successfully")


@router.post("/login")
def login(payload: LoginRequest, request: Request):
    login_field = payload.email or payload.username
    if not login_field:
        raise HTTPException(status_code=400, detail="Email or username is required")
    if not payload.password:
        raise HTTPException(status_code=400, detail="Password is required")

    user = database.collection("user").find_one({"$or": [{"email": login_field}, {"username": login_field}]})
    if not user or not verify_password(payload.password, user.get("password", "")):
        logger.info("Failed login for %s", login_field)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    user = portfolio.backfill_user_profile(user)
    return _session_response(request, user, "Login successful")


@router.get("/me")
def me(current: dict = Depends(get_current_user)):
    user = database.collection("user").find_one({"_id": database.to_oid(current["id"])})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return database.to_public(user)


@router.get("/verify")
def verify(current: dict = Depends(get_current_user)):
    return {"valid": True, "user": current}


@router.post("/logout")
def logout(_: dict = Depends(get_current_user)):
    # tokens are stateless; the client drops its copy
    return {"message": "Logged out successfully"}


@router.put("/change-password")
def change_password(payload: ChangePasswordRequest, current: dict = Depends(get_current_user)):
    user = database.collection("user").find_one({"_id": database.to_oid(current["id"])})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if not verify_password(payload.current_password, user["password"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    database.update_document("user", {"_id": user["_id"]}, {"password": hash_password(payload.new_password)})
    return {"message": "Password changed successfully"}


# Portfolio profile
@router.get("/portfolio/default")
def get_default_portfolio(viewer: Optional[dict] = Depends(get_optional_user)):
    user = portfolio.visible_owner(None, viewer)
    return {"user": portfolio.public_profile(user)}


@router.get("/portfolio/{username}")
def get_portfolio(username: str, viewer: Optional[dict] = Depends(get_optional_user)):
    user = portfolio.visible_owner(username, viewer)
    return {"user": portfolio.public_profile(user)}


@router.put("/portfolio/update")
def update_portfolio(payload: PortfolioUpdate, current: dict = Depends(get_current_user)):
    user = database.collection("user").find_one({"_id": database.to_oid(current["id"])})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    changes = {k: v for k, v in payload.portfolio_data.items() if v is not None}
    if "fullName" in changes and not str(changes["fullName"]).strip():
        raise HTTPException(status_code=400, detail="Full name cannot be empty")
    merged = portfolio.complete_portfolio_data(
        {**(user.get("portfolioData") or {}), **changes}, user["username"], user["email"]
    )
    try:
        merged = PortfolioData(**merged).model_dump(by_alias=True)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail={"message": "Invalid portfolio data", "errors": exc.errors(include_url=False, include_context=False)})

    user = database.update_document("user", {"_id": user["_id"]}, {"portfolioData": merged})
    return {"message": "Portfolio data updated successfully", "user": portfolio.account_view(user)}


@router.get("/portfolios/public")
def list_public_portfolios():
    users = database.get_documents(
        "user",
        {"portfolioData.isPublic": {"$ne": False}},
        sort=[("createdAt", 1)],
    )
    return [portfolio.public_profile(u) for u in users]


@router.put("/set-default/{username}")
def set_default(username: str, _: dict = Depends(get_current_admin)):
    user = portfolio.set_default_user(username)
    return {"message": f"{username} is now the default portfolio", "user": portfolio.public_profile(user)}


@router.delete("/account")
def delete_account(current: dict = Depends(get_current_user)):
    if not database.collection("user").find_one({"_id": database.to_oid(current["id"])}):
        raise HTTPException(status_code=404, detail="User not found")
    removed = portfolio.delete_account_cascade(current["id"])
    return {"message": "Account deleted successfully", "removed": removed}
