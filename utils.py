import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import wraps
from typing import Any, Callable, Dict, Optional

import jwt
from flask import current_app, g, jsonify, request
from werkzeug.security import check_password_hash, generate_password_hash

from models import ErrorKind, utcnow

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 400,
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
}


class ApiResponse:
    @staticmethod
    def success(data=None, message="Success", status_code=200):
        return jsonify({
            "success": True,
            "message": message,
            "data": data
        }), status_code

    @staticmethod
    def error(message="Error", errors=None, status_code=400):
        return jsonify({
            "success": False,
            "message": message,
            "errors": errors
        }), status_code

    @staticmethod
    def failure(failure):
        """Translate a manager ``Failure`` into an error response."""
        return ApiResponse.error(failure.message, status_code=STATUS_CODES.get(failure.kind, 400))


class CredentialStore:
    """Salted one-way password hashing backed by werkzeug's PBKDF2."""

    def __init__(self, iterations: int = 600000) -> None:
        self.method = f"pbkdf2:sha256:{iterations}"

    def hash(self, plaintext: str) -> str:
        return generate_password_hash(plaintext, method=self.method)

    def verify(self, plaintext, digest) -> bool:
        if not isinstance(plaintext, str) or not isinstance(digest, str):
            return False
        try:
            return check_password_hash(digest, plaintext)
        except ValueError:
            # Unknown hash method in a stored digest
            return False


class TokenError(enum.Enum):
    MALFORMED = "malformed"
    SIGNATURE_INVALID = "signature_invalid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TokenCheck:
    valid: bool
    claims: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[TokenError] = None


class TokenService:
    """Issues and verifies signed, time-limited JWTs.

    Expiry is checked against ``clock`` rather than PyJWT's own wall clock so
    that tests can move time forward.
    """

    def __init__(
        self,
        secret_key: str,
        ttl: timedelta = timedelta(hours=24),
        algorithm: str = ALGORITHM,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("A signing secret is required")
        self._secret_key = secret_key
        self.ttl = ttl
        self.algorithm = algorithm
        self._clock = clock

    def issue(self, claims: Dict[str, Any], ttl: Optional[timedelta] = None) -> str:
        now = self._clock()
        payload = dict(claims)
        payload["iat"] = int(now.timestamp())
        payload["exp"] = int((now + (ttl if ttl is not None else self.ttl)).timestamp())
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def verify(self, token) -> TokenCheck:
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_iat": False, "verify_nbf": False},
            )
        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError) as e:
            logger.debug("Token signature rejected: %s", e)
            return TokenCheck(valid=False, reason=TokenError.SIGNATURE_INVALID)
        except jwt.InvalidTokenError as e:
            logger.debug("Token could not be decoded: %s", e)
            return TokenCheck(valid=False, reason=TokenError.MALFORMED)

        expiry = claims.get("exp")
        if not isinstance(expiry, (int, float)) or isinstance(expiry, bool):
            return TokenCheck(valid=False, reason=TokenError.MALFORMED)
        if self._clock().timestamp() > expiry:
            logger.debug("Token expired at %s", expiry)
            return TokenCheck(valid=False, reason=TokenError.EXPIRED)

        return TokenCheck(valid=True, claims=claims)


def extract_token(auth_header):
    if not auth_header:
        return None
    auth_header = auth_header.strip()
    if auth_header.lower().startswith("bearer "):
        auth_header = auth_header[7:].strip()
    return auth_header or None


def token_required(f):
    """Reject the request unless it carries a valid token.

    A missing token is answered with 403 and a present but invalid one with
    401. On success the caller's id is stored on ``g.user_id`` and handed to
    the view as ``current_user_id``.
    """
    @wraps(f)
    def wrapper(*args, **kwargs):
        token = extract_token(request.headers.get("Authorization"))

        if token is None:
            return ApiResponse.error("No token provided", status_code=403)

        directory = current_app.config["USER_DIRECTORY"]
        check = directory.verify_token(token)
        if not check.valid:
            current_app.logger.debug("Rejected token on %s: %s", request.path, check.reason.value)
            return ApiResponse.error("Invalid token", status_code=401)

        user_id = check.claims.get("user_id")
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            current_app.logger.debug("Token on %s carries no usable user id", request.path)
            return ApiResponse.error("Invalid token", status_code=401)

        g.user_id = user_id
        return f(current_user_id=user_id, *args, **kwargs)
    return wrapper
