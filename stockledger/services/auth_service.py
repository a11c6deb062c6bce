import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.models.movement import utcnow
from stockledger.models.user import User

logger = logging.getLogger(__name__)

# Capabilities granted by each role. "all" grants everything;
# "<name>" also grants "<name>:read".
ROLE_CAPABILITIES: dict[str, set[str]] = {
    "admin": {"all"},
    "supervisor": {"products", "inventory", "reports"},
    "staff": {"products", "inventory:read"},
}


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


def create_access_token(user_id: int, username: str) -> str:
    payload = {
        "sub": str(user_id),
        "username": username,
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError):
        return None


def has_capability(user: User, capability: str) -> bool:
    granted = ROLE_CAPABILITIES.get(user.role, set())
    if "all" in granted or capability in granted:
        return True
    base, _, scope = capability.partition(":")
    return scope == "read" and base in granted


def authenticate(db: Session, username: str, password: str) -> User | None:
    user = db.query(User).filter(User.username == username, User.active == True).first()  # noqa: E712
    if not user or not verify_password(password, user.password_hash):
        return None
    user.last_login = utcnow()
    db.commit()
    return user


def get_user_by_id(db: Session, user_id: int) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def create_user(
    db: Session,
    username: str,
    password: str,
    display_name: str = "",
    email: str = "",
    role: str = "staff",
) -> User:
    if role not in ROLE_CAPABILITIES:
        raise ValueError(f"Unknown role '{role}'")
    existing = db.query(User).filter(User.username == username).first()
    if existing:
        raise ValueError(f"Username '{username}' already exists")
    user = User(
        username=username,
        email=email,
        display_name=display_name or username,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def ensure_default_admin(db: Session) -> None:
    """Create default admin user if no users exist."""
    count = db.query(User).count()
    if count == 0:
        create_user(
            db,
            username=settings.DEFAULT_ADMIN_USERNAME,
            password=settings.DEFAULT_ADMIN_PASSWORD,
            display_name="Admin",
            email=settings.DEFAULT_ADMIN_EMAIL,
            role="admin",
        )
        logger.info("Created default admin user '%s'", settings.DEFAULT_ADMIN_USERNAME)
