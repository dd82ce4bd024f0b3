import logging
from fastapi import HTTPException, Depends
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from passlib.context import CryptContext
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional, Tuple

from app.core.database import get_db
from app.auth.models import User
from app.auth.schemas import UserCreate, LoginRequest, UserOut, TokenResponse
from app.core.config import (
    SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, REFRESH_TOKEN_EXPIRE_DAYS
)

# Initialize logger and security tools
logger = logging.getLogger(__name__)
pwd = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer = HTTPBearer()

ADMIN_ROLE = "ADMIN"


def hash_password(password: str) -> str:
    """
    Hashes a plaintext password using bcrypt.

    Args:
        password (str): Raw password input.

    Returns:
        str: Bcrypt-hashed password.
    """
    return pwd.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd.verify(plain_password, hashed_password)


def create_token(user_id: int, token_type: str = "access", expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    if not expires_delta:
        if token_type == "access":
            expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        else:
            expires_delta = timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": int(now.timestamp()),
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Decodes and validates a JWT token.

    Args:
        token (str): JWT string.

    Returns:
        dict: Decoded payload.

    Raises:
        HTTPException: If token is invalid or expired.
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM], options={"verify_aud": False})
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired authentication token")


def get_current_user_id(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> int:
    """
    Extracts the user ID from an access token.

    Raises:
        HTTPException: If token is invalid or missing required claims.
    """
    payload = decode_token(creds.credentials)
    if payload.get("type", "access") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token missing subject field")
    try:
        return int(user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user ID in token")


def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Lets the request through only for users with the ADMIN role."""
    if user.role != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return user


def _issue_tokens(user: User) -> Tuple[TokenResponse, str]:
    access_token = create_token(user.id, token_type="access")
    refresh_token = create_token(user.id, token_type="refresh")
    return TokenResponse(access_token=access_token, user=UserOut.model_validate(user)), refresh_token


def handle_login(req: LoginRequest, db: Session) -> Tuple[TokenResponse, str]:
    """
    Handles login via email and password.

    Args:
        req (LoginRequest): Email and password credentials.
        db (Session): DB session.

    Returns:
        Tuple[TokenResponse, str]: Access token response and refresh token.
    """
    email = req.email.lower().strip()
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(req.password, user.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    logger.info("Login for user %s", user.id)
    return _issue_tokens(user)


def handle_signup(req: UserCreate, db: Session) -> Tuple[TokenResponse, str]:
    """
    Handles user signup using email and password.

    Args:
        req (UserCreate): Signup request data.
        db (Session): DB session.

    Returns:
        Tuple[TokenResponse, str]: Access token response and refresh token.
    """
    email = req.email.lower().strip()
    if not req.password:
        raise HTTPException(status_code=400, detail="Password required")
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="Email already exists")

    user = User(email=email, name=req.name, password=hash_password(req.password), role="USER")
    db.add(user); db.commit(); db.refresh(user)

    logger.info("Signed up user %s", user.id)
    return _issue_tokens(user)


def handle_token_refresh(refresh_token: str, db: Session) -> Tuple[TokenResponse, str]:
    """
    Verifies the refresh token and issues a new access + refresh token pair.

    Args:
        refresh_token (str): The token from the cookie.
        db (Session): Active DB session.

    Returns:
        Tuple[TokenResponse, str]: New access token response and refresh token.
    """
    payload = decode_token(refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid token type")

    user = db.query(User).filter(User.id == int(payload.get("sub", 0))).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return _issue_tokens(user)
