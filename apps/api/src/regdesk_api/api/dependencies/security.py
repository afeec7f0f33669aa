import secrets

from fastapi import Header, HTTPException, status

from regdesk_api.core.settings import settings


def _matches(candidate: str, expected: str) -> bool:
    return secrets.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


async def require_admin_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API key not configured",
        )

    if not _matches(x_api_key, settings.admin_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


async def require_report_token(authorization: str = Header("", alias="Authorization")) -> None:
    """Cron callers authenticate with ``Authorization: Bearer <report_token>``."""

    if not settings.report_token:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Report token not configured",
        )

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not _matches(token.strip(), settings.report_token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid report token",
        )
