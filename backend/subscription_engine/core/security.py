from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from subscription_engine.core.database import get_db
from subscription_engine.core.settings import settings
from subscription_engine.models.profile import Profile
from subscription_engine.services.cache import TTLCache


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == "admin"


def _normalize_email(value: str) -> str:
    return str(value or "").strip().lower()


def _is_admin_email(email: str) -> bool:
    normalized = _normalize_email(email)
    if not normalized:
        return False
    return normalized in (settings.admin_emails or set())


def _require_supabase_config() -> str:
    if not settings.supabase_url:
        raise HTTPException(status_code=500, detail="SUPABASE_URL is not configured")
    return settings.supabase_url


def _decode_supabase_jwt(token: str) -> dict[str, Any]:
    import jwt

    supabase_url = _require_supabase_config().rstrip("/")
    jwks_url = f"{supabase_url}/auth/v1/.well-known/jwks.json"
    issuer = settings.supabase_jwt_issuer or f"{supabase_url}/auth/v1"
    audience = settings.supabase_jwt_audience or "authenticated"

    try:
        jwks_client = jwt.PyJWKClient(jwks_url)
        signing_key = jwks_client.get_signing_key_from_jwt(token).key
        payload = jwt.decode(
            token,
            signing_key,
            algorithms=["ES256", "RS256"],
            audience=audience,
            issuer=issuer,
            options={"require": ["exp", "sub"]},
        )
        return dict(payload)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid bearer token")


_SUPABASE_PROFILE_ROLE_CACHE = TTLCache(max_items=20000, ttl_s=60)


def _supabase_rest_profiles_role(
    *,
    supabase_url: str,
    user_id: str,
    api_key: str,
    bearer: str,
    timeout_s: float = 8,
) -> tuple[int | None, str | None]:
    import requests

    try:
        resp = requests.get(
            f"{supabase_url}/rest/v1/profiles",
            params={"select": "role", "id": f"eq.{user_id}"},
            headers={
                "apikey": api_key,
                "authorization": f"Bearer {bearer}",
                "accept": "application/json",
            },
            timeout=timeout_s,
        )
    except requests.RequestException:
        logger.warning("security.supabase_role.unreachable user_id=%s", user_id)
        return (None, None)
    status = int(resp.status_code)
    if status != 200:
        return (status, None)
    try:
        rows = resp.json()
    except ValueError:
        return (status, None)
    if not isinstance(rows, list) or not rows:
        return (status, None)
    role = rows[0].get("role") if isinstance(rows[0], dict) else None
    role = str(role or "").strip().lower() or None
    return (status, role)


def _fetch_profile_role_from_supabase_cached(*, user_id: str, user_token: str) -> str | None:
    supabase_url = (settings.supabase_url or "").strip().rstrip("/")
    if not supabase_url:
        return None
    api_key = (settings.supabase_service_role_key or settings.supabase_anon_key or "").strip()
    if not api_key:
        return None
    cache_key = f"supabase_profile_role:{user_id}"
    cached = _SUPABASE_PROFILE_ROLE_CACHE.get(cache_key)
    if isinstance(cached, str):
        return cached or None
    bearer = (settings.supabase_service_role_key or user_token or "").strip()
    if not bearer:
        return None
    _status, role = _supabase_rest_profiles_role(
        supabase_url=supabase_url,
        user_id=user_id,
        api_key=api_key,
        bearer=bearer,
        timeout_s=8,
    )
    if role:
        _SUPABASE_PROFILE_ROLE_CACHE.set(cache_key, role)
    return role or None


def _decide_role(
    *,
    email_is_admin: bool,
    claim_is_admin: bool,
    db_role: str | None,
    supabase_role: str | None,
) -> tuple[str, str]:
    dbr = str(db_role or "").strip().lower()
    if dbr == "admin":
        return ("admin", "db_profile")
    if email_is_admin:
        return ("admin", "admin_emails")
    if claim_is_admin:
        return ("admin", "jwt_claim")
    if str(supabase_role or "").strip().lower() == "admin":
        return ("admin", "supabase_profiles")
    if dbr:
        return (dbr, "db_profile")
    return ("user", "default")


def _get_bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    if not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token


def _claims_contact(claims: dict[str, Any]) -> tuple[str, str]:
    user_meta = claims.get("user_metadata") or {}
    if not isinstance(user_meta, dict):
        user_meta = {}
    display_name = str(user_meta.get("display_name") or user_meta.get("full_name") or user_meta.get("name") or "").strip()
    phone = str(user_meta.get("phone_number") or user_meta.get("phone") or claims.get("phone") or "").strip()
    return display_name, phone


def get_current_user(request: Request, db: Session = Depends(get_db)) -> CurrentUser:
    token = _get_bearer_token(request)

    claims = _decode_supabase_jwt(token)
    user_id = str(claims.get("sub") or "").strip()
    email = str(claims.get("email") or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    app_meta = claims.get("app_metadata") or {}
    if not isinstance(app_meta, dict):
        app_meta = {}
    claimed_role = str(app_meta.get("role") or "").strip().lower()
    top_level_role = str(claims.get("role") or "").strip().lower()
    claim_is_admin = claimed_role == "admin" or top_level_role == "admin"
    display_name, phone = _claims_contact(claims)

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    email_is_admin = _is_admin_email(email)
    remote_role: str | None = None
    local_role = str((profile.role if profile else "") or "").strip().lower()
    if local_role != "admin" and not (email_is_admin or claim_is_admin):
        remote_role = _fetch_profile_role_from_supabase_cached(user_id=user_id, user_token=token)

    if profile is None:
        initial_role, _reason = _decide_role(
            email_is_admin=email_is_admin,
            claim_is_admin=claim_is_admin,
            db_role=None,
            supabase_role=remote_role,
        )
        profile = Profile(
            id=user_id,
            email=email,
            role=initial_role,
            display_name=display_name or None,
            phone_number=phone or None,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
    else:
        changed = False
        next_role, _reason = _decide_role(
            email_is_admin=email_is_admin,
            claim_is_admin=claim_is_admin,
            db_role=profile.role,
            supabase_role=remote_role,
        )
        if next_role and (profile.role or "").strip().lower() != next_role:
            profile.role = next_role
            changed = True
        if email and (profile.email or "") != email:
            profile.email = email
            changed = True
        # Contact fields are only filled in, never cleared, from the token.
        if display_name and not profile.display_name:
            profile.display_name = display_name
            changed = True
        if phone and not profile.phone_number:
            profile.phone_number = phone
            changed = True
        if changed:
            try:
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.warning("security.profile_sync.failed user_id=%s", user_id)

    return CurrentUser(id=profile.id, email=profile.email or "", role=profile.role or "user")


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
