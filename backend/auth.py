"""
API key authentication for the Trend Engine API.

Keys come from API_KEY_USER1..API_KEY_USER5.  Users listed in
ADMIN_API_USERS (default "user1") may call /admin routes: pattern
discovery, hypothesis validation and scheduler status.
"""

from fastapi import Security, HTTPException, status
from fastapi.security import APIKeyHeader
import os
from typing import Dict, FrozenSet
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# API Key header
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

MAX_API_USERS = 5


def get_valid_api_keys() -> Dict[str, str]:
    """Map each configured API key to its user identifier"""
    keys = {}

    for i in range(1, MAX_API_USERS + 1):
        key = os.getenv(f"API_KEY_USER{i}")
        if key:
            keys[key] = f"user{i}"

    if not keys:
        # Development fallback (never use in production)
        if os.getenv("ENVIRONMENT") == "development":
            keys["dev-key-insecure"] = "user1"
        else:
            raise ValueError("No API keys configured! Set API_KEY_USER1 in environment")

    return keys


def get_admin_users() -> FrozenSet[str]:
    raw = os.getenv("ADMIN_API_USERS", "user1")
    return frozenset(u.strip() for u in raw.split(",") if u.strip())


VALID_API_KEYS = get_valid_api_keys()
ADMIN_USERS = get_admin_users()


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    """
    Verify the X-API-Key header and return the user identifier

    Usage in FastAPI routes:
        @app.get("/api/backtest")
        async def backtest(user: str = Depends(verify_api_key)):
            ...
    """
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Include 'X-API-Key' header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if api_key not in VALID_API_KEYS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return VALID_API_KEYS[api_key]


async def verify_admin_api_key(user: str = Security(verify_api_key)) -> str:
    """Admin-only routes (discovery sweeps, hypothesis intake)"""
    if user not in ADMIN_USERS:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return user
