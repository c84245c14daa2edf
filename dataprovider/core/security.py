from datetime import datetime, timedelta, timezone
from jose import jwt
from passlib.context import CryptContext

TOKEN_ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def issue_token(claims: dict, secret: str, ttl: timedelta) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {**claims, "iat": int(now.timestamp()), "exp": int((now + ttl).timestamp())},
        secret,
        algorithm=TOKEN_ALGORITHM,
    )

def verify_token(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=[TOKEN_ALGORITHM])

def unverified_claims(token: str) -> dict:
    # Clients hold no signing secret; claims are read for expiry and identity only.
    return jwt.get_unverified_claims(token)

def token_expired(claims: dict, now: datetime | None = None) -> bool:
    exp = claims.get("exp")
    if exp is None:
        return False
    moment = now or datetime.now(timezone.utc)
    try:
        return int(exp) <= int(moment.timestamp())
    except (TypeError, ValueError):
        return True
