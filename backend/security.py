"""
Bearer-token checks for the billing API.

Tokens are minted by the CRM's auth service; this service only verifies
them. Claims used here: `sub`, `role`, and an optional `permissions` list.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

from jose import JWTError, jwt

SECRET_KEY = os.getenv("SECRET_KEY", "changeme-secret-key")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
# set when the issuer stamps `iss`; tokens from anyone else are refused
TOKEN_ISSUER = os.getenv("JWT_ISSUER") or None


def decode_token(token: str) -> Dict[str, Any]:
    options = {"require_sub": True, "require_exp": True}
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM], issuer=TOKEN_ISSUER, options=options)
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    permissions = payload.get("permissions")
    if permissions is not None and not _is_string_list(permissions):
        raise ValueError("Token permissions must be a list of names")
    return payload


def _is_string_list(value: Optional[Any]) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)
