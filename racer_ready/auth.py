"""Email/password accounts backing the session identity."""

import logging
import re
import uuid
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from . import datastore
from .datastore import ACCOUNTS, where
from .session import Identity
from .standings import now_ms

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MESSAGES = {
    "auth/invalid-email": "Please enter a valid email address.",
    "auth/weak-password": f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
    "auth/password-mismatch": "Passwords do not match.",
    "auth/email-already-in-use": "An account with this email already exists.",
    "auth/user-not-found": "No account found with this email.",
    "auth/wrong-password": "Incorrect password.",
}


class AuthError(Exception):
    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(message or MESSAGES.get(code, code))
        self.code = code
        self.message = message or MESSAGES.get(code, code)


def _normalise_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise AuthError("auth/invalid-email")
    return email


def _check_password_strength(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise AuthError("auth/weak-password")


def _find_account(email: str) -> Optional[dict]:
    matches = datastore.query(ACCOUNTS, [where("email", email)])
    return matches[0] if matches else None


def register(email: str, password: str, confirm: str) -> Identity:
    email = _normalise_email(email)
    _check_password_strength(password)
    if password != confirm:
        raise AuthError("auth/password-mismatch")
    if _find_account(email) is not None:
        raise AuthError("auth/email-already-in-use")
    uid = uuid.uuid4().hex
    datastore.set_doc(
        ACCOUNTS,
        uid,
        {"email": email, "passwordHash": generate_password_hash(password), "createdAt": now_ms()},
    )
    logger.info("account %s registered", uid)
    return Identity(uid, email)


def sign_in(email: str, password: str) -> Identity:
    email = _normalise_email(email)
    account = _find_account(email)
    if account is None:
        raise AuthError("auth/user-not-found")
    if not check_password_hash(account.get("passwordHash", ""), password or ""):
        raise AuthError("auth/wrong-password")
    return Identity(account["id"], account["email"])


def identity_for(uid: Optional[str]) -> Optional[Identity]:
    if not uid:
        return None
    account = datastore.get(ACCOUNTS, uid)
    if account is None:
        return None
    return Identity(uid, account.get("email", ""))


def _reauthenticate(identity: Identity, password: str) -> dict:
    account = datastore.get(ACCOUNTS, identity.uid)
    if account is None:
        raise AuthError("auth/user-not-found")
    if not check_password_hash(account.get("passwordHash", ""), password or ""):
        raise AuthError("auth/wrong-password")
    return account


def change_email(identity: Identity, current_password: str, new_email: str) -> Identity:
    _reauthenticate(identity, current_password)
    new_email = _normalise_email(new_email)
    other = _find_account(new_email)
    if other is not None and other["id"] != identity.uid:
        raise AuthError("auth/email-already-in-use")
    datastore.update(ACCOUNTS, identity.uid, {"email": new_email})
    logger.info("account %s changed email", identity.uid)
    return Identity(identity.uid, new_email)


def change_password(identity: Identity, current_password: str, new_password: str) -> None:
    _reauthenticate(identity, current_password)
    _check_password_strength(new_password)
    datastore.update(ACCOUNTS, identity.uid, {"passwordHash": generate_password_hash(new_password)})
    logger.info("account %s changed password", identity.uid)
