"""User accounts: registration, login, profiles, admin seeding."""
import logging
from typing import Any, Dict, Optional

from pymongo.database import Database

from config import Settings
from database import create_document, get_documents, now, parse_object_id
from errors import Conflict, NotFound, Unauthorized, ValidationFailed
from schemas import ProfileUpdate, RegisterRequest, Role, User
from security import get_password_hash, issue_token, verify_password

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_NAME = "Rong Chapa Admin"
PUBLIC_USER_FIELDS = ("name", "email", "role", "phone", "organization", "address", "created_at", "updated_at")


def sanitize_user(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not user:
        return None
    out = {"id": str(user["_id"])}
    for field in PUBLIC_USER_FIELDS:
        out[field] = user.get(field)
    return out


def auth_response(user: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    return {"token": issue_token(user, settings), "user": sanitize_user(user)}


class AccountService:
    def __init__(self, db: Database, settings: Settings):
        self.db = db
        self.settings = settings

    def _find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.db["user"].find_one({"email": email.strip().lower()})

    def _insert_user(self, *, name, email, password, role=Role.CUSTOMER, phone=None,
                     organization=None, address=None, last_login_at=None) -> Dict[str, Any]:
        data = User(
            name=name,
            email=email.strip().lower(),
            password_hash=get_password_hash(password),
            role=role,
            phone=phone,
            organization=organization,
            address=address,
            last_login_at=last_login_at,
        ).model_dump()
        user_id = create_document(self.db, "user", data)
        return self.db["user"].find_one({"_id": user_id})

    def register(self, payload: RegisterRequest) -> Dict[str, Any]:
        if self._find_by_email(payload.email):
            raise Conflict("Email already in use")
        user = self._insert_user(
            name=payload.name,
            email=payload.email,
            password=payload.password,
            phone=payload.phone,
            organization=payload.organization,
            address=payload.address,
            last_login_at=now(),
        )
        logger.info("Registered customer %s", user["_id"])
        return auth_response(user, self.settings)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        user = self._find_by_email(email)
        if not user or not verify_password(password, user.get("password_hash", "")):
            raise Unauthorized("Invalid credentials")
        stamp = now()
        self.db["user"].update_one({"_id": user["_id"]}, {"$set": {"last_login_at": stamp, "updated_at": stamp}})
        user["last_login_at"] = stamp
        return auth_response(user, self.settings)

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        user = self.db["user"].find_one({"_id": parse_object_id(user_id)})
        if not user:
            raise NotFound("User", user_id)
        return sanitize_user(user)

    def update_profile(self, user_id: str, payload: ProfileUpdate) -> Dict[str, Any]:
        oid = parse_object_id(user_id)
        user = self.db["user"].find_one({"_id": oid})
        if not user:
            raise NotFound("User", user_id)

        supplied = payload.model_fields_set
        updates: Dict[str, Any] = {}

        if payload.email and payload.email.lower() != user["email"]:
            existing = self._find_by_email(payload.email)
            if existing and existing["_id"] != oid:
                raise Conflict("This email is already in use.")
            updates["email"] = payload.email.lower()

        if payload.name is not None:
            updates["name"] = payload.name
        for field in ("phone", "organization", "address"):
            if field in supplied:
                updates[field] = getattr(payload, field)

        if payload.new_password:
            if not payload.current_password:
                raise ValidationFailed("Current password is required to set a new password.")
            if not verify_password(payload.current_password, user.get("password_hash", "")):
                raise Unauthorized("Current password is incorrect.")
            updates["password_hash"] = get_password_hash(payload.new_password)

        if updates:
            updates["updated_at"] = now()
            self.db["user"].update_one({"_id": oid}, {"$set": updates})
        user = self.db["user"].find_one({"_id": oid})
        return {"user": sanitize_user(user), "token": issue_token(user, self.settings)}

    def ensure_account(self, *, name: Optional[str], email: Optional[str], password: Optional[str],
                       phone: Optional[str] = None, address: Optional[str] = None) -> Dict[str, Any]:
        """Create the customer account for a guest checkout.

        Fails with ValidationFailed when email or password is missing and with
        Conflict when the email already belongs to an account; the caller must
        not place the order in either case.
        """
        if not email:
            raise ValidationFailed("Email is required to create an account with your order.")
        if not password:
            raise ValidationFailed("Password is required to create your account.")
        if self._find_by_email(email):
            raise Conflict("An account with this email already exists. Please sign in to continue.")
        user = self._insert_user(
            name=name, email=email, password=password, phone=phone, address=address, last_login_at=now()
        )
        logger.info("Created customer account %s during checkout", user["_id"])
        return user

    def ensure_admin_user(self) -> Optional[Dict[str, Any]]:
        email, password = self.settings.admin_email, self.settings.admin_password
        if not email or not password:
            logger.warning("Admin seeding skipped: ADMIN_EMAIL or ADMIN_PASSWORD not set.")
            return None

        existing = self._find_by_email(email)
        if existing:
            updates = {
                "password_hash": get_password_hash(password),
                "role": Role.ADMIN.value,
                "name": existing.get("name") or DEFAULT_ADMIN_NAME,
                "updated_at": now(),
            }
            self.db["user"].update_one({"_id": existing["_id"]}, {"$set": updates})
            logger.info("Admin user refreshed for %s", email)
            return self.db["user"].find_one({"_id": existing["_id"]})

        user = self._insert_user(name=DEFAULT_ADMIN_NAME, email=email, password=password, role=Role.ADMIN)
        logger.info("Admin user created for %s", email)
        return user

    def customer_directory(self, limit: Any = 12) -> Dict[str, Any]:
        try:
            safe_limit = min(max(int(limit), 1), 50)
        except (TypeError, ValueError):
            safe_limit = 12
        query = {"role": Role.CUSTOMER.value}
        total = self.db["user"].count_documents(query)
        customers = get_documents(self.db, "user", query, limit=safe_limit)
        return {"total_customers": total, "customers": [sanitize_user(c) for c in customers]}
