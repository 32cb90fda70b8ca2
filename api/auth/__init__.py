"""
Authentication Package

Bearer-token verification and identity resolution. Tokens are issued by
the external identity provider.
"""

from api.auth.jwt import (
    create_access_token,
    verify_token,
    decode_token,
    TokenError
)
from api.auth.dependencies import (
    get_optional_identity,
    get_current_identity,
    require_platform_roles,
    require_admin,
    require_reviewer,
    client_info
)

__all__ = [
    # JWT
    "create_access_token",
    "verify_token",
    "decode_token",
    "TokenError",
    # Dependencies
    "get_optional_identity",
    "get_current_identity",
    "require_platform_roles",
    "require_admin",
    "require_reviewer",
    "client_info"
]
