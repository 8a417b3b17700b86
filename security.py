"""Password hashing, bearer tokens and the FastAPI auth dependencies."""
from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from config import Settings, get_settings
from errors import Forbidden, Unauthorized

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


class CurrentUser(BaseModel):
    id: str
    role: str
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def verify_password(plain_password, hashed_password):
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def issue_token(user: dict, settings: Settings) -> str:
    return create_access_token(
        {"sub": str(user["_id"]), "role": user.get("role", "customer"), "email": user.get("email")},
        settings,
    )


def decode_token(token: str, settings: Settings) -> CurrentUser:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        raise Unauthorized("Invalid or expired token")
    user_id = payload.get("sub")
    if user_id is None or not ObjectId.is_valid(user_id):
        raise Unauthorized("Invalid or expired token")
    return CurrentUser(id=user_id, role=payload.get("role", "customer"), email=payload.get("email"))


def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
) -> Optional[CurrentUser]:
    # anonymous is fine here, a bad token is not
    if not token:
        return None
    return decode_token(token, settings)


def get_current_user(current: Optional[CurrentUser] = Depends(get_optional_user)) -> CurrentUser:
    if current is None:
        raise Unauthorized("Authentication required")
    return current


def require_admin(current: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not current.is_admin:
        raise Forbidden("Admin access required")
    return current
