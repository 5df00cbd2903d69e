"""Application-wide constants for idaas-broker.

Constants that define broker behavior.
For user-configurable settings per profile, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    "CONFIG_FILE_NAME",
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_CACHE_DIR",
    "DEFAULT_LOG_DIR",
    # Environment variables
    "ENV_CONFIG_PATH",
    "ENV_DEBUG",
    "ENV_UNSAFE_DEBUG",
    "ENV_PKCS8_PASSWORD",
    "ENV_YUBIKEY_PIN",
    "ENV_PKCS11_PIN",
    # Cache categories
    "CATEGORY_CLOUD_TOKEN",
    "CATEGORY_OIDC",
    "CATEGORY_OIDC_TOKEN",
    "CATEGORY_TOKEN_RESPONSE",
    # HTTP
    "HTTP_TIMEOUT_SECONDS",
    "USER_AGENT",
    # OIDC
    "DEFAULT_SCOPE",
    "GRANT_TYPE_DEVICE_CODE",
    "GRANT_TYPE_REFRESH_TOKEN",
    "GRANT_TYPE_CLIENT_CREDENTIALS",
    "CLIENT_ASSERTION_TYPE_JWT_BEARER",
    "CLIENT_ASSERTION_VALIDITY_SECONDS",
    "DISCOVERY_DOCUMENT_LIFETIME_SECONDS",
    # Device flow
    "DEVICE_CODE_REQUEST_ATTEMPTS",
    "DEVICE_FLOW_MAX_POLLS",
    "DEVICE_FLOW_MAX_CONSECUTIVE_ERRORS",
    "DEVICE_FLOW_DEFAULT_INTERVAL_SECONDS",
    "DEVICE_FLOW_SLOW_DOWN_INCREMENT_SECONDS",
    # Local serving endpoint
    "DEFAULT_SERVE_PORT",
    "DEFAULT_SERVE_HOST",
    "SSRF_TOKEN_HEADER",
    "SSRF_TOKEN_QUERY_PARAM",
]

from platformdirs import user_cache_dir, user_config_dir, user_log_dir

# ============================================================================
# Application Identity
# ============================================================================

APP_NAME: str = "idaas-broker"

CONFIG_FILE_NAME: str = "idaas-broker.json"

# Platform-specific paths:
# - macOS: ~/Library/Application Support/idaas-broker/
# - Linux: ~/.config/idaas-broker/
# - Windows: %APPDATA%\idaas-broker\
DEFAULT_CONFIG_DIR: str = user_config_dir(APP_NAME)

# Encrypted credential cache lives here, one sub-directory per category
DEFAULT_CACHE_DIR: str = user_cache_dir(APP_NAME)

DEFAULT_LOG_DIR: str = user_log_dir(APP_NAME)

# ============================================================================
# Environment Variables
# ============================================================================

ENV_CONFIG_PATH: str = "IDAAS_BROKER_CONFIG"
ENV_DEBUG: str = "IDAAS_BROKER_DEBUG"
# Allows raw upstream response bodies in DEBUG logs. Never enable in production.
ENV_UNSAFE_DEBUG: str = "IDAAS_BROKER_UNSAFE_DEBUG"
ENV_PKCS8_PASSWORD: str = "IDAAS_BROKER_PKCS8_PASSWORD"
ENV_YUBIKEY_PIN: str = "IDAAS_BROKER_YUBIKEY_PIN"
ENV_PKCS11_PIN: str = "IDAAS_BROKER_PKCS11_PIN"

# ============================================================================
# Cache Categories
# ============================================================================

# Vendor-neutral cloud account credential (nested vendor STS token)
CATEGORY_CLOUD_TOKEN: str = "cloud_token"
# OpenID discovery document
CATEGORY_OIDC: str = "oidc"
# ID token or access token returned to callers
CATEGORY_OIDC_TOKEN: str = "oidc_token"
# Full token response, kept only when it carries a refresh token
CATEGORY_TOKEN_RESPONSE: str = "token_response"

# ============================================================================
# HTTP
# ============================================================================

HTTP_TIMEOUT_SECONDS: float = 30.0

USER_AGENT: str = f"{APP_NAME}/python"

# ============================================================================
# OIDC
# ============================================================================

DEFAULT_SCOPE: str = "openid"

GRANT_TYPE_DEVICE_CODE: str = "urn:ietf:params:oauth:grant-type:device_code"
GRANT_TYPE_REFRESH_TOKEN: str = "refresh_token"
GRANT_TYPE_CLIENT_CREDENTIALS: str = "client_credentials"

CLIENT_ASSERTION_TYPE_JWT_BEARER: str = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"

# RFC 7523 assertion lifetime (exp = iat + 5 minutes)
CLIENT_ASSERTION_VALIDITY_SECONDS: int = 300

# Discovery documents rarely change; treat a fetched copy as valid for 7 days
DISCOVERY_DOCUMENT_LIFETIME_SECONDS: int = 7 * 24 * 3600

# ============================================================================
# Device Flow (RFC 8628)
# ============================================================================

DEVICE_CODE_REQUEST_ATTEMPTS: int = 3
DEVICE_FLOW_MAX_POLLS: int = 100
DEVICE_FLOW_MAX_CONSECUTIVE_ERRORS: int = 3
DEVICE_FLOW_DEFAULT_INTERVAL_SECONDS: int = 5
DEVICE_FLOW_SLOW_DOWN_INCREMENT_SECONDS: int = 1

# ============================================================================
# Local Serving Endpoint
# ============================================================================

DEFAULT_SERVE_PORT: int = 1127
DEFAULT_SERVE_HOST: str = "127.0.0.1"

SSRF_TOKEN_HEADER: str = "X-Aliyun-Parameters-Secrets-Token"
SSRF_TOKEN_QUERY_PARAM: str = "__ssrf_token"
