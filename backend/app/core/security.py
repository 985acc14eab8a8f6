from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List
from jose import JWTError, jwt
import bcrypt
from fastapi import HTTPException, status
from fastapi.security import HTTPBearer
import re
import secrets

from app.core.config import settings

# Bearer token security (auto_error off so a missing header yields 401, not 403)
security = HTTPBearer(auto_error=False)

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
PASSWORD_SPECIAL_CHARS = "@$!%*?&"
PASSWORD_ALLOWED_PATTERN = re.compile(r"^[A-Za-z\d@$!%*?&]+$")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password"""
    if not hashed_password:
        return False
    # Bcrypt has a 72 byte limit - truncate password if necessary
    password_bytes = plain_password.encode('utf-8')[:72]
    return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))


def get_password_hash(password: str) -> str:
    """Hash password with configurable rounds (BCRYPT_ROUNDS in .env)"""
    password_bytes = password.encode('utf-8')[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode('utf-8')


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT refresh token; jti keeps every issued token unique"""
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))
    to_encode.update({"exp": expire, "type": "refresh", "jti": secrets.token_hex(16)})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode JWT token"""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def generate_secure_token() -> str:
    """Opaque token for email verification and password reset links"""
    return secrets.token_urlsafe(32)


def validate_password_rules(password: str) -> List[str]:
    """Return the list of violated password rules (empty when valid)"""
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f"Password must not exceed {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not any(c in PASSWORD_SPECIAL_CHARS for c in password):
        errors.append(f"Password must contain at least one special character ({PASSWORD_SPECIAL_CHARS})")
    if password and not PASSWORD_ALLOWED_PATTERN.match(password):
        errors.append(f"Password may only contain letters, numbers and {PASSWORD_SPECIAL_CHARS}")
    return errors


def calculate_password_score(password: str) -> int:
    """Score 0-100: length, character classes, extra length, no triple repeats"""
    score = min(len(password) * 4, 20)
    if re.search(r"[a-z]", password):
        score += 10
    if re.search(r"[A-Z]", password):
        score += 10
    if re.search(r"\d", password):
        score += 10
    if any(c in PASSWORD_SPECIAL_CHARS for c in password):
        score += 10
    if len(password) >= 12:
        score += 10
    if password and not re.search(r"(.)\1\1", password):
        score += 10
    return min(score, 100)


def password_strength_level(score: int) -> str:
    if score >= 80:
        return "very_strong"
    if score >= 60:
        return "strong"
    if score >= 40:
        return "medium"
    if score >= 20:
        return "weak"
    return "very_weak"


def check_password_strength(password: str) -> Dict[str, Any]:
    """Full strength report used by registration, reset and the strength endpoint"""
    errors = validate_password_rules(password)
    score = calculate_password_score(password)
    return {
        "score": score,
        "strength": password_strength_level(score),
        "is_valid": not errors,
        "errors": errors,
    }
