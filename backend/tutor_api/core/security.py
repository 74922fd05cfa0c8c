from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from tutor_api.core.errors import InvalidToken

# Fixed bcrypt cost factor
BCRYPT_ROUNDS = 10

# CryptContext handles password hashing using bcrypt
# bcrypt is deliberately slow to resist brute-force attacks
pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS
)

# Verified against when no user matches so both login failures cost one bcrypt run
_DUMMY_HASH = pwd_context.hash("dummy-password-for-timing")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Unrecognized or corrupted stored hash
        return False


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    # bcrypt automatically generates a salt and includes it in the hash
    return pwd_context.hash(password)


def burn_password_check(plain_password: str) -> None:
    """Run one bcrypt verify whose result is discarded."""
    # Same error handling as a real check so both login failures look alike
    verify_password(plain_password, _DUMMY_HASH)


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """Issues and verifies HS256 session tokens signed with one process-wide secret."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_seconds: int = 3600):
        if not secret_key:
            raise ValueError("A signing secret is required")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.expire_seconds = expire_seconds

    def issue(self, user_id: str, email: str, expires_delta: timedelta | None = None) -> str:
        """Create a signed token carrying the user id and email"""
        now = datetime.now(timezone.utc)
        if expires_delta is None:
            expires_delta = timedelta(seconds=self.expire_seconds)

        # JWT standard uses 'sub' (subject) claim for user identifier
        to_encode = {
            "sub": str(user_id),
            "email": email,
            "iat": now,
            "exp": now + expires_delta,
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Decode and verify a token.

        Bad signature, malformed input, expiry and missing claims all raise
        the same InvalidToken so callers cannot tell them apart.
        """
        if not token:
            raise InvalidToken()
        try:
            # Verifies signature and expiration
            payload = jwt.decode(token, self._secret_key, algorithms=[self.algorithm])
        except JWTError:
            raise InvalidToken() from None

        user_id = payload.get("sub")
        email = payload.get("email")
        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        if not user_id or not email or expires_at is None:
            raise InvalidToken()

        try:
            return TokenClaims(
                user_id=str(user_id),
                email=str(email),
                issued_at=datetime.fromtimestamp(int(issued_at or 0), tz=timezone.utc),
                expires_at=datetime.fromtimestamp(int(expires_at), tz=timezone.utc),
            )
        except (TypeError, ValueError, OverflowError):
            raise InvalidToken() from None
