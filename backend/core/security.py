"""
Bearer token validation.

Tokens are issued by the identity provider. Auth0 RS256 tokens are checked
against the tenant's JWKS; local and test environments may also present
HS256 tokens signed with ``jwt_secret``. Either way the caller gets the claims
dict (``sub`` = Stitchline user id) or None.
"""

import time

import httpx
from jose import JWTError, jwt

from core.config import Settings, get_settings

LOCAL_ENVS = {"", "local", "dev", "development", "test"}

# issuer -> (expires_at, jwks)
_JWKS_CACHE: dict[str, tuple[float, dict]] = {}


def _auth0_issuer(settings: Settings) -> str:
    issuer = settings.auth0_issuer or settings.auth0_domain.strip()
    if not issuer:
        return ""
    if not issuer.startswith(("http://", "https://")):
        issuer = f"https://{issuer}"
    return issuer.rstrip("/")


def _get_jwks(issuer: str) -> dict | None:
    now = time.time()
    cached = _JWKS_CACHE.get(issuer)
    if cached and cached[0] > now:
        return cached[1]

    try:
        with httpx.Client(timeout=5.0) as client:
            resp = client.get(f"{issuer}/.well-known/jwks.json")
            resp.raise_for_status()
        jwks = resp.json()
    except (httpx.HTTPError, ValueError):
        return None
    if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
        return None

    ttl = max(60, get_settings().auth0_jwks_cache_ttl_seconds)
    _JWKS_CACHE[issuer] = (now + ttl, jwks)
    return jwks


def _decode_auth0(token: str, settings: Settings) -> dict | None:
    issuer = _auth0_issuer(settings)
    if not issuer or not settings.auth0_audience:
        return None
    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except JWTError:
        return None
    jwks = _get_jwks(issuer) if kid else None
    key = next((k for k in (jwks or {}).get("keys", []) if k.get("kid") == kid), None)
    if key is None:
        return None
    try:
        return jwt.decode(token, key, algorithms=["RS256"], audience=settings.auth0_audience, issuer=issuer)
    except JWTError:
        return None


def decode_access_token(token: str) -> dict | None:
    """Claims of a valid token carrying a subject, else None."""
    settings = get_settings()

    claims = _decode_auth0(token, settings)
    if claims is None:
        auth0_only = settings.auth0_domain and settings.auth0_audience
        if auth0_only and settings.app_env.strip().lower() not in LOCAL_ENVS:
            return None
        try:
            claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        except JWTError:
            return None

    if not claims.get("sub"):
        return None
    return claims
