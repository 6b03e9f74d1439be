import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from journeyline.core.settings import Settings

# Set up logging
logger = logging.getLogger(__name__)

# Security configuration
settings = Settings()
SECRET_KEY = settings.JWT_SECRET
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

# Tokens are issued by the identity service; this service only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    token = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    logger.info("Access token created successfully", extra={
        'account_id': data.get('sub'),
        'expires_in': ACCESS_TOKEN_EXPIRE_MINUTES
    })
    return token

def decode_account_id(token: str) -> Optional[UUID]:
    """Account id carried in a valid access token, or None"""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        return None

    subject = payload.get("sub")
    if not subject or payload.get("type") != "access":
        logger.warning("Invalid token payload")
        return None
    try:
        return UUID(str(subject))
    except ValueError:
        logger.warning("Token subject is not an account id")
        return None

async def get_current_account_id(token: str = Depends(oauth2_scheme)) -> UUID:
    """Authenticated account id from the bearer token"""
    account_id = decode_account_id(token)
    if account_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account_id
