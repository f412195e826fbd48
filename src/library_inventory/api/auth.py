"""
Staff authentication for the HTTP API.

Tokens are itsdangerous timed signatures of the staff identity, sent as
``Authorization: Bearer <token>``. Passwords are stored as salted
PBKDF2-SHA256 hashes.
"""

import hashlib
import hmac
import logging
import secrets

from fastapi import Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..config import ServerConfig
from ..database.staff_repository import StaffRepository
from ..exceptions import Unauthorized
from ..models.staff import Actor, Staff

logger = logging.getLogger(__name__)

TOKEN_SALT = "staff-auth"
HASH_ALGORITHM = "pbkdf2_sha256"
HASH_ITERATIONS = 260000

__all__ = [
    "Unauthorized",
    "authenticate",
    "create_token",
    "get_current_actor",
    "hash_password",
    "read_token",
    "verify_password",
]


def hash_password(password: str, iterations: int = HASH_ITERATIONS) -> str:
    """Returns ``pbkdf2_sha256$<iterations>$<salt>$<hex digest>``."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"{HASH_ALGORITHM}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        algorithm, iterations, salt, expected = password_hash.split("$")
    except ValueError:
        return False
    if algorithm != HASH_ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def _serializer(config: ServerConfig) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(config.secret_key, salt=TOKEN_SALT)


def create_token(config: ServerConfig, staff: Staff) -> str:
    """Returns a signed token identifying a staff member."""
    return _serializer(config).dumps(
        {"staff_id": staff.id, "username": staff.username, "role": staff.role}
    )


def read_token(config: ServerConfig, token: str) -> Actor:
    """
    Verifies a token and returns the identity it carries.

    Raises:
        Unauthorized: If the signature is bad or older than ``token_max_age``
    """
    try:
        data = _serializer(config).loads(token, max_age=config.token_max_age)
    except SignatureExpired as e:
        raise Unauthorized("Token expired") from e
    except BadSignature as e:
        raise Unauthorized("Invalid token") from e
    return Actor.model_validate(data)


def authenticate(repo: StaffRepository, username: str, password: str) -> Staff:
    """
    Checks a username and password against the staff directory.

    Raises:
        Unauthorized: On an unknown username or a wrong password
    """
    staff = repo.get_db_by_username(username)
    if staff is None or not verify_password(password, staff.password_hash):
        logger.info("Failed login for %s", username)
        raise Unauthorized("Invalid username or password")
    return Staff.model_validate(staff, from_attributes=True)


def get_current_actor(request: Request) -> Actor:
    """
    FastAPI dependency yielding the authenticated staff identity.

    The staff id in the token must still exist in the directory.
    """
    header = request.headers.get("Authorization")
    if not header:
        raise Unauthorized("Missing Authorization header")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Authorization header must be 'Bearer <token>'")

    actor = read_token(request.app.state.config, token.strip())
    with request.app.state.db_manager.session_scope() as session:
        if not StaffRepository(session).exists(actor.staff_id):
            raise Unauthorized("Unknown staff account")
    return actor
