"""Optional bearer-token authentication for the API.

When the application has an ``id_token_verifier`` on its state, a bearer
token in the ``Authorization`` header is verified before any resolver
runs. Without a verifier the header is ignored.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..security.openid_connect import DiscoveryError, IdToken, IdTokenVerifier, TokenVerificationError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def authenticate(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> IdToken | None:
    """FastAPI dependency returning the caller's verified ID token, if any.

    Raises HTTP 401 for a missing token when authentication is required or
    for any token that fails verification, and HTTP 503 when the identity
    provider cannot be reached.
    """
    verifier: IdTokenVerifier | None = getattr(request.app.state, "id_token_verifier", None)
    if verifier is None:
        return None
    if credentials is None:
        if getattr(request.app.state, "auth_required", False):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="missing bearer token",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return None

    try:
        return verifier.verify(credentials.credentials)
    except TokenVerificationError as exc:
        logger.warning("rejected bearer token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except DiscoveryError as exc:
        logger.error("identity provider unavailable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="identity provider unavailable",
        ) from exc
