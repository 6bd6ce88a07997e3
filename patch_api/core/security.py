from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt

ALGORITHM = "HS256"


class IdentityError(ValueError):
    """Raised when a bearer token does not carry a usable tenant identity."""


def issue_identity_token(account: str, secret: str, ttl: timedelta, *, claim: str = "account") -> str:
    now = datetime.now(timezone.utc)
    payload = {claim: account, "iat": int(now.timestamp()), "exp": int((now + ttl).timestamp())}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def account_from_token(token: str, secret: str, *, claim: str = "account") -> str:
    try:
        identity = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        raise IdentityError("Invalid identity token")
    account = str(identity.get(claim) or "").strip()
    if not account:
        raise IdentityError("Identity token has no account")
    return account
