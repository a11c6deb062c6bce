from datetime import datetime

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from stockledger.database import get_db
from stockledger.models.user import User
from stockledger.services import auth_service

router = APIRouter(prefix="/auth", tags=["Auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class UserOut(BaseModel):
    id: int
    username: str
    email: str
    display_name: str
    role: str
    active: bool = True
    last_login: datetime | None = None

    model_config = {"from_attributes": True}


class CreateUserRequest(BaseModel):
    username: str
    password: str
    display_name: str = ""
    email: str = ""
    role: str = "staff"


def get_current_user(
    token: str | None = Cookie(default=None, alias="token"),
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """Dependency: extract user from the JWT cookie or a Bearer header."""
    if not token and authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(401, "Not authenticated")
    payload = auth_service.decode_token(token)
    if not payload:
        raise HTTPException(401, "Invalid or expired token")
    user = auth_service.get_user_by_id(db, int(payload["sub"]))
    if not user or not user.active:
        raise HTTPException(401, "User not found or disabled")
    return user


def require(capability: str):
    """Dependency factory: current user must hold ``capability``."""

    def checker(user: User = Depends(get_current_user)) -> User:
        if not auth_service.has_capability(user, capability):
            raise HTTPException(403, f"Missing permission: {capability}")
        return user

    return checker


@router.post("/login")
def login(data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, data.username, data.password)
    if not user:
        raise HTTPException(401, "Invalid username or password")
    token = auth_service.create_access_token(user.id, user.username)
    response.set_cookie("token", token, httponly=True, samesite="lax", max_age=3600 * 72)
    return {"token": token, "user": UserOut.model_validate(user)}


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie("token")
    return {"ok": True}


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.get("/users", response_model=list[UserOut])
def list_users(db: Session = Depends(get_db), _: User = Depends(require("users"))):
    return auth_service.list_users(db)


@router.post("/users", response_model=UserOut, status_code=201)
def create_user(data: CreateUserRequest, db: Session = Depends(get_db), _: User = Depends(require("users"))):
    try:
        return auth_service.create_user(
            db,
            username=data.username,
            password=data.password,
            display_name=data.display_name,
            email=data.email,
            role=data.role,
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
