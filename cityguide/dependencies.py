"""Dependencies for FastAPI routes."""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from cityguide.config import settings
from cityguide.database import get_db
from cityguide.services.planner import TripPlanner
from cityguide.services.trip_store import TripRepository
from typing import Optional
import jwt
from jwt import PyJWKClient
import logging

logger = logging.getLogger(__name__)

# HTTP Bearer token security
security = HTTPBearer()

_jwks_client: Optional[PyJWKClient] = None
_planner: Optional[TripPlanner] = None


def _get_jwks_client() -> PyJWKClient:
    """Build the JWKS client once; it caches signing keys between requests."""
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = PyJWKClient(f"https://{settings.auth0_domain}/.well-known/jwks.json")
    return _jwks_client


def verify_auth0_token(token: str) -> dict:
    """
    Validate an Auth0 JWT token and return user info.
    
    Args:
        token: JWT token from Auth0
        
    Returns:
        dict with user information (id, email, name)
        
    Raises:
        HTTPException: If token is invalid
    """
    auth0_domain = settings.auth0_domain
    if not auth0_domain:
        logger.warning("Auth0 domain not configured, rejecting token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Auth0 not configured on server",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        signing_key = _get_jwks_client().get_signing_key_from_jwt(token)
        
        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.auth0_audience,
            issuer=f"https://{auth0_domain}/",
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Token has expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.PyJWKClientError as e:
        logger.error(f"Could not load Auth0 signing key: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed: signing key unavailable",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid token: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication credentials: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # The Auth0 subject is the opaque owner key for trips
    return {
        "id": payload.get("sub"),
        "email": payload.get("email") or payload.get(f"https://{auth0_domain}/email"),
        "name": payload.get("name") or payload.get(f"https://{auth0_domain}/name"),
        "picture": payload.get("picture"),
    }


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """
    Verify JWT token and return current user.
    """
    return verify_auth0_token(credentials.credentials)


def get_trip_repository(db: AsyncSession = Depends(get_db)) -> TripRepository:
    return TripRepository(db)


def get_planner() -> TripPlanner:
    """Shared planner holding conversation sessions and per-trip locks."""
    global _planner
    if _planner is None:
        _planner = TripPlanner()
    return _planner


async def close_planner() -> None:
    global _planner
    if _planner is not None:
        await _planner.aclose()
        _planner = None
