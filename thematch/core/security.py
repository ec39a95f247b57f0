from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from thematch.core.config import settings
from thematch.models.tournament_model import Actor, ActorRole

SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_actor(token: str) -> Optional[Actor]:
    """Turns an already-issued access token into the acting identity.

    Returns None for anything that does not verify; the caller decides how
    to reject it.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    actor_id = payload.get("sub")
    if actor_id is None:
        return None
    role = payload.get("role", ActorRole.USER.value)
    if role not in {r.value for r in ActorRole}:
        role = ActorRole.USER.value
    return Actor(id=actor_id, role=role)
