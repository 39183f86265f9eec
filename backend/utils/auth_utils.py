import logging
import os
import threading
import time
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, Request, status
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError

load_dotenv()

logger = logging.getLogger(__name__)

# Tokens are issued by the identity service; this backend only verifies them.
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
TOKEN_CACHE_TTL_SECONDS = int(os.getenv("TOKEN_CACHE_TTL_SECONDS", "300"))


class TokenCache:
    """
    Decoded-claims cache keyed by raw token.

    One instance lives on ``app.state``; swap it for a shared cache or a
    ``NullTokenCache`` without touching the auth dependencies.
    """

    def __init__(self, ttl_seconds: int = TOKEN_CACHE_TTL_SECONDS, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def get(self, token: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            claims, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[token]
                return None
            return claims

    def set(self, token: str, claims: Dict[str, Any], ttl_seconds: Optional[int] = None):
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        # Never outlive the token itself
        if "exp" in claims:
            ttl = min(ttl, max(0, int(claims["exp"] - time.time())))
        with self._lock:
            self._entries[token] = (claims, self._clock() + ttl)

    def invalidate(self, token: str):
        with self._lock:
            self._entries.pop(token, None)

    def clear(self):
        with self._lock:
            self._entries.clear()


class NullTokenCache(TokenCache):
    """Cache that never stores anything."""

    def get(self, token):
        return None

    def set(self, token, claims, ttl_seconds=None):
        pass


def get_token_cache(request: Request) -> TokenCache:
    cache = getattr(request.app.state, "token_cache", None)
    return cache if cache is not None else NullTokenCache()


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has expired")
    except JWTClaimsError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token claims: {e}")
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Token validation failed: {e}")


def get_current_user(request: Request, cache: TokenCache = Depends(get_token_cache)) -> Dict[str, Any]:
    """
    FastAPI dependency that validates the bearer token and returns its claims.

    Usage:
        @router.get("/secure-data")
        def secure_endpoint(user: dict = Depends(get_current_user)):
            ...
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header is missing",
        )

    # The token is expected to be in the format "Bearer <token>"
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
        )

    token = parts[1]
    claims = cache.get(token)
    if claims is None:
        claims = decode_token(token)
        cache.set(token, claims)
    return claims


def get_user_identifier(user: Dict[str, Any]) -> Optional[str]:
    if not user:
        return None
    return user.get("sub") or user.get("email") or user.get("username")


def get_user_roles(user: Dict[str, Any]) -> List[str]:
    roles = (user or {}).get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return list(roles)


def require_role(allowed_roles: List[str]):
    """Dependency factory: the caller must hold at least one of ``allowed_roles``."""
    def checker(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        roles = get_user_roles(user)
        # superadmin passes every role check
        if "superadmin" in roles or any(role in roles for role in allowed_roles):
            return user
        logger.warning(f"User {get_user_identifier(user)} with roles {roles} denied; requires {allowed_roles}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return checker
