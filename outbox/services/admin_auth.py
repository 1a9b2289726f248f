import secrets

from fastapi import Header, HTTPException

from outbox.core.config import settings


async def require_admin(x_admin_key: str | None = Header(default=None)) -> None:
    if not x_admin_key:
        raise HTTPException(status_code=401, detail="Missing X-Admin-Key")
    if not secrets.compare_digest(x_admin_key, settings.admin_api_key.get_secret_value()):
        raise HTTPException(status_code=403, detail="Admin key required")
