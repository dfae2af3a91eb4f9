import hashlib
import hmac
from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from moderation.core.auth import Principal, PrincipalType
from moderation.core.config import Settings, get_settings
from moderation.services.repository import RepositoryUnavailableError, get_repository
from moderation.services.roles import ROLE_SCOPES, Role, parse_role


async def get_machine_principal(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    x_module_id: str | None = Header(default=None, alias="X-Module-Id"),
) -> Principal:
    if not x_api_key or not x_module_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"machine auth requires {settings.api_key_header} and X-Module-Id",
        )

    try:
        credentials = await repository.get_machine_credentials(x_module_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid module credentials")

    key_hash = hashlib.sha256(x_api_key.encode("utf-8")).hexdigest()
    matched = next((record for record in credentials if hmac.compare_digest(record.key_hash, key_hash)), None)
    if not matched:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid module credentials")

    return Principal(
        principal_type=PrincipalType.MACHINE,
        subject=matched.module_id,
        scopes=set(matched.scopes),
        actor_id=matched.module_db_id,
    )


async def get_human_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="human auth requires bearer token",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    if not settings.auth_url or not settings.auth_anon_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="identity provider is not configured",
        )

    user = await _fetch_identity_user(
        auth_url=settings.auth_url,
        auth_anon_key=settings.auth_anon_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    role = _resolve_human_role(user)
    company_id, is_company_admin = _resolve_company_membership(user)

    return Principal(
        principal_type=PrincipalType.HUMAN,
        subject=user_id,
        role=role.value,
        scopes=set(ROLE_SCOPES[role]),
        actor_id=user_id,
        company_id=company_id,
        is_company_admin=is_company_admin,
    )


async def get_any_principal(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    x_module_id: str | None = Header(default=None, alias="X-Module-Id"),
) -> Principal:
    if x_module_id or x_api_key:
        return await get_machine_principal(
            settings=settings,
            repository=repository,
            x_api_key=x_api_key,
            x_module_id=x_module_id,
        )
    return await get_human_principal(settings=settings, authorization=authorization)


async def _fetch_identity_user(
    *,
    auth_url: str,
    auth_anon_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": auth_anon_key,
    }
    url = f"{auth_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="identity verification unavailable",
        ) from exc

    if response.status_code in {401, 403}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="identity verification failed",
        )

    return response.json()


def _resolve_human_role(user: dict[str, Any]) -> Role:
    # user_metadata is writable by the account holder, so roles come from app_metadata only.
    app_metadata = user.get("app_metadata")
    if not isinstance(app_metadata, dict):
        return Role.JOB_SEEKER

    role = app_metadata.get("role")
    if isinstance(role, str) and role:
        return parse_role(role)

    roles = app_metadata.get("roles")
    if isinstance(roles, list) and roles and isinstance(roles[0], str):
        return parse_role(roles[0])

    return Role.JOB_SEEKER


def _resolve_company_membership(user: dict[str, Any]) -> tuple[str | None, bool]:
    app_metadata = user.get("app_metadata")
    if not isinstance(app_metadata, dict):
        return None, False

    company_id = app_metadata.get("company_id")
    if not isinstance(company_id, str) or not company_id:
        company_id = None
    return company_id, app_metadata.get("is_company_admin") is True
