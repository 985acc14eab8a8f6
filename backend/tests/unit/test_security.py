"""
Unit Tests for Security Module
Tests for: password hashing, JWT tokens, password rules and strength
"""
import pytest
from datetime import timedelta
from jose import jwt
from fastapi import HTTPException

from app.core.security import (
    verify_password,
    get_password_hash,
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_secure_token,
    validate_password_rules,
    calculate_password_score,
    password_strength_level,
    check_password_strength,
)
from app.core.config import settings


class TestPasswordHashing:
    """Test password hashing functions"""

    def test_hash_password_returns_different_value(self):
        hashed = get_password_hash("Password123!")

        assert hashed != "Password123!"
        assert hashed.startswith("$2")

    def test_hash_password_different_each_time(self):
        # Bcrypt generates different salts
        assert get_password_hash("Password123!") != get_password_hash("Password123!")

    def test_verify_password_correct(self):
        hashed = get_password_hash("Password123!")

        assert verify_password("Password123!", hashed) is True

    def test_verify_password_incorrect(self):
        hashed = get_password_hash("Password123!")

        assert verify_password("Password124!", hashed) is False

    def test_verify_password_empty_hash(self):
        assert verify_password("Password123!", "") is False


class TestJWTTokens:
    """Test JWT token creation and decoding"""

    def test_access_token_contains_claims(self):
        token = create_access_token({"sub": "user-1", "role": "student"})
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])

        assert payload["sub"] == "user-1"
        assert payload["role"] == "student"
        assert payload["type"] == "access"
        assert "exp" in payload

    def test_refresh_tokens_are_unique(self):
        first = create_refresh_token({"sub": "user-1"})
        second = create_refresh_token({"sub": "user-1"})

        assert first != second
        assert decode_token(first)["type"] == "refresh"

    def test_decode_expired_token_raises_401(self):
        token = create_access_token({"sub": "user-1"}, expires_delta=timedelta(seconds=-1))

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)

        assert exc_info.value.status_code == 401

    def test_decode_token_signed_with_other_key(self):
        token = jwt.encode({"sub": "user-1"}, "another-secret", algorithm="HS256")

        with pytest.raises(HTTPException):
            decode_token(token)

    def test_secure_tokens_are_random(self):
        assert generate_secure_token() != generate_secure_token()
        assert len(generate_secure_token()) >= 32


class TestPasswordRules:
    """Test password validation and strength scoring"""

    def test_valid_password_has_no_errors(self):
        assert validate_password_rules("Password123!") == []

    @pytest.mark.parametrize("password,fragment", [
        ("Pa1!", "at least 8 characters"),
        ("password123!", "uppercase"),
        ("PASSWORD123!", "lowercase"),
        ("Password!!", "number"),
        ("Password123", "special character"),
        ("Password 123!", "may only contain"),
    ])
    def test_rule_violations(self, password, fragment):
        errors = validate_password_rules(password)

        assert any(fragment in error for error in errors)

    def test_too_long_password(self):
        errors = validate_password_rules("Aa1!" * 40)

        assert any("must not exceed" in error for error in errors)

    def test_score_rewards_variety_and_length(self):
        assert calculate_password_score("aaaaaa") < calculate_password_score("Password123!")
        assert calculate_password_score("LongerPassword123!") == 80

    def test_repeated_characters_lose_points(self):
        assert calculate_password_score("Paaassword1!") < calculate_password_score("Password123!")

    @pytest.mark.parametrize("score,level", [
        (0, "very_weak"),
        (20, "weak"),
        (40, "medium"),
        (60, "strong"),
        (80, "very_strong"),
    ])
    def test_strength_levels(self, score, level):
        assert password_strength_level(score) == level

    def test_strength_report(self):
        report = check_password_strength("weak")

        assert report["is_valid"] is False
        assert report["errors"]
        assert report["strength"] in {"very_weak", "weak", "medium"}
