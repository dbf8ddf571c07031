"""
Auth helpers: password hashing, JWT bearer tokens and the bookkeeper check.
Bcrypt accepts at most 72 bytes; passwords are truncated to that before hashing.
"""

import bcrypt
import os
import re
from datetime import datetime, timedelta
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from .models import Campaign, Player

# Username: alphanumeric and underscore only, 2–32 chars
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{2,32}$")

SECRET_KEY = os.environ.get("JWT_SECRET", "change-me-in-production-use-env")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = 30

BCRYPT_MAX_BYTES = 72
BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "10"))
security = HTTPBearer(auto_error=False)


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("ascii")


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(_password_bytes(plain), hashed.encode("ascii"))


def create_access_token(player_id: str) -> str:
    expire = datetime.utcnow() + timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS)
    return jwt.encode({"sub": player_id, "exp": expire}, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> str | None:
    """Player id from a token, None when invalid or expired."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM]).get("sub")
    except JWTError:
        return None


def validate_username(username: str) -> bool:
    return bool(USERNAME_PATTERN.match(username))


def _player_from_credentials(
    credentials: HTTPAuthorizationCredentials | None,
    db: Session,
) -> Player | None:
    if not credentials:
        return None
    player_id = decode_token(credentials.credentials)
    if not player_id:
        return None
    return db.query(Player).filter(Player.id == player_id).first()


def get_current_player(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Player:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    player = _player_from_credentials(credentials, db)
    if not player:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return player


def get_current_player_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Player | None:
    return _player_from_credentials(credentials, db)


def is_bookkeeper(campaign: Campaign, player: Player | None) -> bool:
    """Only the player who created the campaign keeps the kingdom's books."""
    return player is not None and str(campaign.created_by) == str(player.id)


def require_bookkeeper(campaign: Campaign, player: Player) -> None:
    """Raise 403 if this player may not change the campaign's kingdom."""
    if not is_bookkeeper(campaign, player):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the bookkeeper can act")
