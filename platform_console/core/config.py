import os
import re
from dotenv import load_dotenv

# .env at the project root
load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./platform_console.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
PUBLIC_BASE_DOMAIN = os.getenv("PUBLIC_BASE_DOMAIN", "").strip().lower()
DEV_BOOTSTRAP_ALLOW = os.getenv("DEV_BOOTSTRAP_ALLOW", "").strip().lower() in _TRUTHY

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

_cors_origin_regex_env = os.getenv("CORS_ALLOW_ORIGIN_REGEX", "").strip()
if _cors_origin_regex_env:
    CORS_ALLOW_ORIGIN_REGEX = _cors_origin_regex_env
elif not IS_DEV and PUBLIC_BASE_DOMAIN:
    CORS_ALLOW_ORIGIN_REGEX = rf"^https://([a-z0-9-]+\.)?{re.escape(PUBLIC_BASE_DOMAIN)}$"
else:
    CORS_ALLOW_ORIGIN_REGEX = None

# Admin session (issued by the auth service, only verified here)
ADMIN_SESSION_SECRET = os.getenv("ADMIN_SESSION_SECRET", "")
ADMIN_SESSION_MAX_AGE_SECONDS = int(os.getenv("ADMIN_SESSION_MAX_AGE_SECONDS", "604800"))
PLATFORM_ADMIN_ROLES = {
    role.strip().lower()
    for role in os.getenv("PLATFORM_ADMIN_ROLES", "platform_admin,admin").split(",")
    if role.strip()
}

# Intervention limits
ACTION_REASON_MAX_LENGTH = int(os.getenv("ACTION_REASON_MAX_LENGTH", "500"))
IDEMPOTENCY_KEY_MAX_LENGTH = int(os.getenv("IDEMPOTENCY_KEY_MAX_LENGTH", "255"))
STALE_ORDER_MAX_MINUTES = int(os.getenv("STALE_ORDER_MAX_MINUTES", "10080"))
AUDIT_QUERY_MAX_LIMIT = 500
