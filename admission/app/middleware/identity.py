"""Client identity resolution for rate limiting.

Priority:
1. API key (X-API-Key header)
2. Authenticated user id (request.state.user_id, set by auth middleware)
3. Client IP address

API keys and IP addresses are hashed with SHA-256 so raw credentials are
never stored in Redis or process memory.
"""

from typing import Optional

from fastapi import HTTPException, Request

from admission.app.core.config import settings
from admission.app.core.utils import hash_identifier

MAX_API_KEY_LENGTH = 512


def get_client_ip(request: Request, trust_forwarded_for: Optional[bool] = None) -> str:
    """Return the client IP, honoring X-Forwarded-For only when trusted."""
    if trust_forwarded_for is None:
        trust_forwarded_for = settings.rate_limit_trust_forwarded_for
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
    return request.client.host if request.client else "unknown"


def get_client_key(request: Request, trust_forwarded_for: Optional[bool] = None) -> str:
    """Get the rate limit key for the request.

    Args:
        request: FastAPI request object
        trust_forwarded_for: Override settings.rate_limit_trust_forwarded_for

    Returns:
        Rate limit key string (hashed, no sensitive data exposed)

    Raises:
        HTTPException: 400 if the API key is unreasonably long
    """
    api_key = request.headers.get("X-API-Key", "").strip()
    if api_key:
        # Validate API key length to prevent DoS via extremely long keys
        if len(api_key) > MAX_API_KEY_LENGTH:
            raise HTTPException(
                status_code=400,
                detail=f"API key too long (max {MAX_API_KEY_LENGTH} characters)",
            )
        return f"rl:apikey:{hash_identifier(api_key)}"

    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"rl:user:{user_id}"

    client_ip = get_client_ip(request, trust_forwarded_for)
    return f"rl:ip:{hash_identifier(client_ip)}"
