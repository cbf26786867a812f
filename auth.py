from infrastructure.repositories.sqlite_user_repository import SQLiteUserRepository
from infrastructure.repositories.sqlite_audit_repository import SQLiteAuditRepository, AuditAction
import hashlib
import hmac
import logging
import secrets
import uuid
import os
import streamlit as st
from datetime import datetime, timedelta
import base64

log = logging.getLogger(__name__)

class UserAlreadyExistsError(Exception):
    pass

class InvalidCredentialsError(Exception):
    pass

class SubscriptionExpiredError(Exception):
    def __init__(self, renewal_url, message="Your subscription has expired."):
        super().__init__(message)
        self.renewal_url = renewal_url

class PasswordResetError(Exception):
    pass

NEST_DB = os.getenv("NEST_DB", "nest.db")
PASSWORD_ITERATIONS = 200_000
SESSION_TTL_DAYS = 30
SIGNUP_SUBSCRIPTION_DAYS = 30
INVITE_SUBSCRIPTION_DAYS = 365
RESET_TTL_MINUTES = 30
MIN_PASSWORD_LENGTH = 6
MAX_FAILED_ATTEMPTS = 5
LOCKOUT_SECONDS = 300
RENEWAL_URL_KEY = "renewal_url"
EXPIRY_NOTICE_DAYS = 7

def get_secret(key):
    try:
        return st.secrets.get(key)
    except FileNotFoundError:
        return None

def get_config(key, default=None):
    return get_secret(key) or os.getenv(key) or default

_user_repo = None
_audit_repo = None

def get_user_repo() -> SQLiteUserRepository:
    global _user_repo
    if _user_repo is None or _user_repo.db_path != NEST_DB:
        _user_repo = SQLiteUserRepository(NEST_DB)
    return _user_repo

def get_audit_repo() -> SQLiteAuditRepository:
    global _audit_repo
    if _audit_repo is None or _audit_repo.db_path != NEST_DB:
        _audit_repo = SQLiteAuditRepository(NEST_DB)
    return _audit_repo

def init_db():
    get_user_repo().init_db()
    get_audit_repo().init_db()

def _normalize_email(email):
    return (email or "").strip().lower()

def _hash_password(password, salt_hex):
    salt = bytes.fromhex(salt_hex)
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PASSWORD_ITERATIONS).hex()

def _make_password(password):
    salt_hex = os.urandom(16).hex()
    return salt_hex, _hash_password(password, salt_hex)

def _verify_password(password, salt_hex, expected_hash):
    candidate = _hash_password(password, salt_hex)
    return hmac.compare_digest(candidate, expected_hash)

def _hash_user_agent(user_agent):
    if not user_agent:
        return None
    return hashlib.sha256(user_agent.encode("utf-8")).hexdigest()

def _hash_token(token):
    return hashlib.sha256(token.encode("utf-8")).hexdigest()

def _get_session_secret():
    secret = get_config("SESSION_SECRET") or get_config("ADMIN_PASSWORD")
    if not secret:
        raise RuntimeError("SESSION_SECRET (or ADMIN_PASSWORD) must be configured")
    return secret.encode("utf-8")

def _encode_b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

def _decode_b64(data: str) -> bytes:
    pad = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + pad)

def _sign_payload(payload: str) -> str:
    sig = hmac.new(_get_session_secret(), payload.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"{_encode_b64(payload.encode('utf-8'))}.{sig}"

def _unsign_token(token: str):
    try:
        b64_payload, sig = token.split(".", 1)
        payload = _decode_b64(b64_payload).decode("utf-8")
        expected = hmac.new(_get_session_secret(), payload.encode("utf-8"), hashlib.sha256).hexdigest()
        if not hmac.compare_digest(expected, sig):
            return None
        user_id, exp_str = payload.rsplit(":", 1)
        if int(datetime.utcnow().timestamp()) > int(exp_str):
            return None
        return user_id
    except Exception:
        return None

def _parse_iso(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None

# --- Accounts ---

def create_user(email, password, display_name=None, role="user", subscription_days=SIGNUP_SUBSCRIPTION_DAYS, created_at=None):
    """Creates credentials plus the role record. Returns the new user id."""
    email = _normalize_email(email)
    now = created_at or datetime.utcnow()
    user_id = str(uuid.uuid4())
    salt_hex, pw_hash = _make_password(password)
    expiry = (now + timedelta(days=subscription_days)).isoformat()
    repo = get_user_repo()
    success, err = repo.create_credentials(user_id, email, salt_hex, pw_hash, expiry, now.isoformat())
    if not success and err == "integrity_error":
        raise UserAlreadyExistsError("User with this email already exists")
    name = display_name if display_name is not None else email.split("@")[0]
    repo.create_app_user(user_id, email, name, role, now.isoformat())
    return user_id

def admin_create_user(email, role="user", password=None, actor_user_id=None):
    """Administrator-issued invitation. The display name is the email local part,
    which makes the invitee go through profile setup on first login."""
    generated = password is None
    if generated:
        password = secrets.token_urlsafe(9) + "A1!"
    user_id = create_user(email, password, role=role, subscription_days=INVITE_SUBSCRIPTION_DAYS)
    get_audit_repo().log_action(
        AuditAction.USER_CREATE, target_type="user", actor_user_id=actor_user_id,
        actor_role="admin", target_id=user_id, metadata={"role": role},
    )
    return {
        "id": user_id,
        "email": _normalize_email(email),
        "role": role,
        "password": password if generated else None,
    }

def upgrade_user_to_admin(email, actor_user_id=None):
    repo = get_user_repo()
    record = repo.get_app_user_by_email(_normalize_email(email))
    if record is None:
        raise ValueError("User with this email does not exist")
    if record["role"] == "admin":
        raise ValueError("User is already an admin")
    update_user_role(record["auth_user_id"], "admin", actor_user_id=actor_user_id, old_role=record["role"])
    return {"email": record["email"], "role": "admin"}

def update_user_role(user_id, role, actor_user_id=None, old_role=None):
    get_user_repo().update_app_user_role(user_id, role, datetime.utcnow().isoformat())
    get_audit_repo().log_action(
        AuditAction.USER_ROLE_CHANGE, target_type="user", actor_user_id=actor_user_id,
        actor_role="admin", target_id=user_id, metadata={"new_role": role, "old_role": old_role},
    )

def get_all_users():
    return get_user_repo().get_all_users()

def get_role(user_id):
    record = get_user_repo().get_app_user(user_id)
    return (record or {}).get("role") or "user"

# --- Subscription ---

def get_renewal_url():
    return get_user_repo().get_setting(RENEWAL_URL_KEY) or get_config("DEFAULT_RENEWAL_URL", "")

def update_renewal_url(url, actor_user_id=None):
    url = (url or "").strip()
    if not url.startswith(("http://", "https://")):
        raise ValueError("Renewal URL must start with http:// or https://")
    get_user_repo().set_setting(RENEWAL_URL_KEY, url)
    get_audit_repo().log_action(AuditAction.RENEWAL_URL_UPDATE, target_type="settings", actor_user_id=actor_user_id, actor_role="admin")

def renew_subscription(email, days=SIGNUP_SUBSCRIPTION_DAYS, actor_user_id=None):
    """Extends the subscription from now and marks it renewed. Returns the new expiry."""
    user = get_user_repo().get_credentials_by_email(_normalize_email(email))
    if user is None:
        raise ValueError("User with this email does not exist")
    expiry = (datetime.utcnow() + timedelta(days=days)).isoformat()
    get_user_repo().update_subscription_expiry(user["id"], expiry)
    get_audit_repo().log_action(
        AuditAction.SUBSCRIPTION_RENEWED, target_type="user", actor_user_id=actor_user_id,
        actor_role="admin", target_id=user["id"], metadata={"days": days},
    )
    return expiry

def is_subscription_expired(subscription_expiry, now=None):
    expiry = _parse_iso(subscription_expiry)
    if expiry is None:
        return False
    return (now or datetime.utcnow()) > expiry

def ensure_subscription_active(user, target_type="auth"):
    """Raises SubscriptionExpiredError for a non-admin whose access has run out."""
    if is_subscription_expired(user["subscription_expiry"]) and get_role(user["id"]) != "admin":
        get_audit_repo().log_action(AuditAction.SUBSCRIPTION_EXPIRED, target_type=target_type,
                                    actor_user_id=user["id"], result="deny")
        raise SubscriptionExpiredError(get_renewal_url())

def subscription_days_remaining(user_id, now=None):
    """Whole days of access left, negative once expired. None for admins and unknown users."""
    user = get_user_by_id(user_id)
    if user is None or get_role(user_id) == "admin":
        return None
    expiry = _parse_iso(user["subscription_expiry"])
    if expiry is None:
        return None
    return (expiry - (now or datetime.utcnow())).days

# --- Authentication ---

def authenticate_user(email, password):
    """Verifies credentials. Returns {"id", "email"}.

    Raises InvalidCredentialsError or SubscriptionExpiredError; both are meant
    to be shown on the login screen.
    """
    email = _normalize_email(email)
    now_iso = datetime.utcnow().isoformat()
    now_ts = datetime.utcnow().timestamp()

    repo = get_user_repo()
    audit = get_audit_repo()

    # 1. Brute-force protection
    limit_dict = repo.get_login_attempts(email)
    if limit_dict:
        attempts = limit_dict["attempts"]
        try:
            last_attempt_time = datetime.fromisoformat(limit_dict["last_attempt"]).timestamp()
            if attempts >= MAX_FAILED_ATTEMPTS and (now_ts - last_attempt_time) < LOCKOUT_SECONDS:
                remaining = int(LOCKOUT_SECONDS - (now_ts - last_attempt_time))
                audit.log_action(AuditAction.LOGIN_BLOCKED, target_type="auth", target_id=email,
                                 metadata={"attempts": attempts, "cooldown": remaining}, result="deny")
                raise InvalidCredentialsError(f"Too many login attempts. Try again in {remaining} seconds.")
            elif attempts >= MAX_FAILED_ATTEMPTS:
                repo.reset_login_attempts(email)
        except ValueError:
            pass

    # 2. Lookup + verify
    user = repo.get_credentials_by_email(email)
    if not user or not _verify_password(password, user["password_salt"], user["password_hash"]):
        _record_failed_attempt(email, now_iso)
        audit.log_action(AuditAction.LOGIN_FAIL, target_type="auth", target_id=email,
                         metadata={"reason": "invalid_credentials"}, result="deny")
        raise InvalidCredentialsError("Invalid email or password")

    if not user["is_active"]:
        audit.log_action(AuditAction.LOGIN_FAIL, target_type="auth", actor_user_id=user["id"],
                         metadata={"reason": "inactive"}, result="deny")
        raise InvalidCredentialsError("This account has been deactivated.")

    # 3. Subscription (admins are never locked out)
    ensure_subscription_active(user)

    repo.delete_login_attempts(email)
    audit.log_action(AuditAction.LOGIN_SUCCESS, target_type="auth", actor_user_id=user["id"])
    return {"id": user["id"], "email": user["email"]}

def _record_failed_attempt(email, attempt_time):
    get_user_repo().record_failed_attempt(email, attempt_time)

# --- Runtime sessions (persisted identity) ---

def create_runtime_session(user_id, user_agent=None, role=None, setup_status=None):
    now_iso = datetime.utcnow().isoformat()
    expires_at = datetime.utcnow() + timedelta(days=SESSION_TTL_DAYS)
    token = _sign_payload(f"{user_id}:{int(expires_at.timestamp())}")
    get_user_repo().create_session(token, user_id, expires_at.isoformat(), now_iso,
                                   _hash_user_agent(user_agent), role, setup_status)
    return token

def resolve_runtime_session(token, user_agent=None):
    """Returns {"user_id", "role", "setup_status"} for a live token, else None."""
    now = datetime.utcnow()
    repo = get_user_repo()
    row = repo.get_session(token)

    if not row:
        # Logout deletes the row, so a signature alone never revives a session.
        return None

    user_id, expires_raw, ua_hash, role, setup_status = row
    expires_at = _parse_iso(expires_raw)
    if expires_at is None or now > expires_at or _unsign_token(token) != user_id:
        repo.delete_session(token)
        return None

    presented_ua = _hash_user_agent(user_agent)
    if ua_hash and presented_ua and not hmac.compare_digest(ua_hash, presented_ua):
        log.warning(f"Session token for {user_id} presented from a different user agent; rejecting")
        return None

    repo.update_session_last_seen(token, now.isoformat())
    return {"user_id": user_id, "role": role, "setup_status": setup_status}

def update_runtime_session_flags(token, role, setup_status):
    get_user_repo().update_session_flags(token, role, setup_status)

def drop_runtime_session(token):
    get_user_repo().delete_session(token)

def get_user_by_id(user_id):
    return get_user_repo().get_credentials_by_id(user_id)

# --- Password recovery ---

def request_password_reset(email):
    """Creates a one-time reset. Returns the recovery query params, or None for
    unknown emails. Delivering the link is the mail provider's job."""
    email = _normalize_email(email)
    repo = get_user_repo()
    user = repo.get_credentials_by_email(email)
    if user is None:
        log.info("Password reset requested for unknown email")
        return None
    access_token = secrets.token_urlsafe(32)
    refresh_token = secrets.token_urlsafe(16)
    expires_iso = (datetime.utcnow() + timedelta(minutes=RESET_TTL_MINUTES)).isoformat()
    repo.create_password_reset(_hash_token(access_token), _hash_token(refresh_token), user["id"], expires_iso)
    get_audit_repo().log_action(AuditAction.PASSWORD_RESET_REQUEST, target_type="auth", actor_user_id=user["id"])
    return {"type": "recovery", "access_token": access_token, "refresh_token": refresh_token}

def reset_password(access_token, refresh_token, new_password):
    if not new_password or len(new_password) < MIN_PASSWORD_LENGTH:
        raise PasswordResetError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    if not access_token or not refresh_token:
        raise PasswordResetError("Invalid or expired password reset link. Please request a new one.")

    repo = get_user_repo()
    token_hash = _hash_token(access_token)
    reset = repo.get_password_reset(token_hash)
    if (
        reset is None
        or reset["used"]
        or not hmac.compare_digest(reset["refresh_hash"], _hash_token(refresh_token))
        or datetime.utcnow() > (_parse_iso(reset["expires_at"]) or datetime.min)
    ):
        raise PasswordResetError("Invalid or expired password reset link. Please request a new one.")

    salt_hex, pw_hash = _make_password(new_password)
    repo.update_password(reset["user_id"], salt_hex, pw_hash)
    repo.mark_password_reset_used(token_hash)
    repo.delete_login_attempts(_normalize_email((repo.get_credentials_by_id(reset["user_id"]) or {}).get("email")))
    get_audit_repo().log_action(AuditAction.PASSWORD_RESET, target_type="auth", actor_user_id=reset["user_id"])
    return reset["user_id"]

# --- Bootstrap ---

def bootstrap_admin():
    admin_email = get_config("ADMIN_EMAIL")
    admin_password = get_config("ADMIN_PASSWORD")
    if not admin_email or not admin_password:
        return

    if get_user_repo().check_user_exists(_normalize_email(admin_email)):
        return

    admin_name = get_config("ADMIN_NAME", "Administrator")
    try:
        create_user(admin_email, admin_password, display_name=admin_name, role="admin",
                    subscription_days=INVITE_SUBSCRIPTION_DAYS)
    except UserAlreadyExistsError:
        pass
