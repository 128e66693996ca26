"""
Configuration module for the Multi-Domain Login Relay.

This module uses Pydantic Settings to load and validate environment variables
for the trusted domain ring, relay token lifetime, per-domain session cookies,
and the identity service the relay reads accounts from.

Environment variables are loaded from .env file or system environment.
"""

import re
from functools import lru_cache
from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The relay settings mirror what an administrator configures for the
    login circuit: the ordered domain list, token timeout, force-logout
    behaviour and the success/error destinations.
    """

    # =========================================================================
    # Relay Circuit Configuration
    # =========================================================================

    RELAY_DOMAINS: str = Field(
        ...,
        description="Ordered list of trusted domains (scheme://host[:port]), newline or comma separated",
        min_length=1,
    )

    RELAY_HASH_SALT: str = Field(
        ...,
        description="Server-side secret mixed into every relay token key",
        min_length=32,
    )

    RELAY_TIMEOUT_SECONDS: int = Field(
        default=60,
        description="Seconds a relay token stays valid after issuance",
        ge=1,
        le=86400,
    )

    RELAY_FORCE_LOGOUT: bool = Field(
        default=False,
        description="Terminate an existing session on a hop before logging in the relayed account",
    )

    RELAY_ENABLE_EXTRA_LOGGING: bool = Field(
        default=False,
        description="Emit debug logs for session termination and establishment",
    )

    RELAY_REDIRECT_SUCCESS: Optional[str] = Field(
        None,
        description="Site-relative path the browser lands on once the circuit is complete (front page if unset)",
    )

    RELAY_REDIRECT_ERROR: Optional[str] = Field(
        None,
        description="Site-relative path used when the relay cannot be started",
    )

    RELAY_EXCLUDED_ROUTES: str = Field(
        default="password_reset",
        description="Comma-separated route names whose logins must not enter the relay",
    )

    DEFAULT_LANGUAGE: str = Field(
        default="en",
        description="Language code served without a path prefix",
        min_length=2,
        max_length=12,
    )

    # =========================================================================
    # Per-domain Session Configuration
    # =========================================================================

    SESSION_SECRET_KEY: str = Field(
        ...,
        description="Secret key for signing the session cookie",
        min_length=32,
    )

    SESSION_JWT_SECRET: str = Field(
        ...,
        description="Secret key for signing session JWTs (must be cryptographically secure)",
        min_length=32,
    )

    SESSION_JWT_ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm (HS256, HS384, or HS512)",
    )

    SESSION_JWT_EXPIRY_MINUTES: int = Field(
        default=60,
        description="Session JWT expiry time in minutes",
        ge=5,
        le=1440,  # Max 24 hours
    )

    SESSION_JWT_ISSUER: str = Field(
        default="multidomain-login",
        description="Issuer claim written to and required on session JWTs",
    )

    SESSION_COOKIE_NAME: str = Field(
        default="relay_session",
        description="Name of the per-domain session cookie",
    )

    SESSION_COOKIE_SECURE: bool = Field(
        default=True,
        description="Only send the session cookie over HTTPS",
    )

    SESSION_COOKIE_SAME_SITE: str = Field(
        default="lax",
        description="SameSite policy of the session cookie (lax, strict or none)",
    )

    # =========================================================================
    # Identity Service Configuration
    # =========================================================================

    IDENTITY_SERVICE_URL: Optional[str] = Field(
        None,
        description="Base URL of the shared account directory (e.g., http://identity:8000)",
    )

    INTERNAL_SHARED_SECRET: Optional[str] = Field(
        None,
        description="Shared secret sent to the identity service in X-Internal-Secret",
        min_length=32,
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    RELAY_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the relay server",
    )

    RELAY_PORT: int = Field(
        default=8080,
        description="Port to bind the relay server",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def domains_list(self) -> List[str]:
        """
        Parse RELAY_DOMAINS into the ordered ring of trusted domains.

        Returns:
            Domain strings in configured order, without trailing slashes.
        """
        return _split_domains(self.RELAY_DOMAINS)

    @property
    def excluded_routes_list(self) -> List[str]:
        """Route names that must not trigger the relay entry redirect."""
        return [
            route.strip()
            for route in self.RELAY_EXCLUDED_ROUTES.split(",")
            if route.strip()
        ]

    @property
    def identity_service_url_str(self) -> Optional[str]:
        if not self.IDENTITY_SERVICE_URL:
            return None
        return self.IDENTITY_SERVICE_URL.rstrip("/")

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("RELAY_DOMAINS")
    @classmethod
    def validate_relay_domains(cls, v: str) -> str:
        """
        Validate that RELAY_DOMAINS holds at least one scheme+host entry.

        Args:
            v: Raw newline or comma separated domains string

        Returns:
            Validated domains string

        Raises:
            ValueError: If the list is empty, malformed or has duplicates
        """
        domains = _split_domains(v)

        if not domains:
            raise ValueError("RELAY_DOMAINS must contain at least one domain")

        for domain in domains:
            parts = urlsplit(domain)
            if parts.scheme not in ("http", "https") or not parts.netloc:
                raise ValueError(
                    f"Invalid domain format: '{domain}'. "
                    "Expected format: 'https://www.example.com'"
                )
            if parts.path or parts.query or parts.fragment:
                raise ValueError(
                    f"Invalid domain format: '{domain}'. "
                    "Domain should not contain a path, query or fragment"
                )

        if len(set(domains)) != len(domains):
            raise ValueError("RELAY_DOMAINS must not contain duplicate entries")

        return v

    @field_validator("RELAY_REDIRECT_SUCCESS", "RELAY_REDIRECT_ERROR")
    @classmethod
    def validate_redirect_path(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith("/") or v.startswith("//"):
            raise ValueError(
                f"Redirect target must be a site-relative path starting with '/', got: {v}"
            )
        return v

    @field_validator("SESSION_JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate JWT algorithm is one of the supported HMAC algorithms.

        Raises:
            ValueError: If algorithm is not supported
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator("SESSION_COOKIE_SAME_SITE")
    @classmethod
    def validate_same_site(cls, v: str) -> str:
        v = v.lower()
        if v not in ("lax", "strict", "none"):
            raise ValueError(f"SESSION_COOKIE_SAME_SITE must be lax, strict or none, got: {v}")
        return v

    @field_validator("DEFAULT_LANGUAGE")
    @classmethod
    def validate_language(cls, v: str) -> str:
        if not _LANGCODE_PATTERN.match(v):
            raise ValueError(f"Invalid language code: {v}")
        return v


_LANGCODE_PATTERN = re.compile(r"^[a-zA-Z]{2,3}(-[a-zA-Z0-9]{2,8})?$")


def _split_domains(raw: str) -> List[str]:
    return [
        domain.strip().rstrip("/")
        for domain in re.split(r"[\n,]", raw)
        if domain.strip()
    ]


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.

    Example:
        >>> from multidomain_login.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.domains_list)
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def is_valid_langcode(langcode: str) -> bool:
    """Check a language code taken from a URL before it is echoed into another URL."""
    return bool(langcode) and bool(_LANGCODE_PATTERN.match(langcode))


def validate_configuration(settings: Settings) -> dict:
    """
    Validate critical configuration settings and return a status report.

    This can be called during application startup to ensure the relay
    circuit is usable.

    Returns:
        Dictionary with validation status and any warnings.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    domains = settings.domains_list

    if not domains:
        errors.append("No relay domains configured")
    elif len(domains) == 1:
        warnings.append("Only one relay domain configured; the circuit will only log in locally")

    if settings.SESSION_SECRET_KEY == settings.SESSION_JWT_SECRET:
        warnings.append("SESSION_SECRET_KEY and SESSION_JWT_SECRET should differ")

    if settings.RELAY_HASH_SALT in (settings.SESSION_SECRET_KEY, settings.SESSION_JWT_SECRET):
        warnings.append("RELAY_HASH_SALT should not be reused as a session secret")

    if any(domain.startswith("http://") for domain in domains) and settings.SESSION_COOKIE_SECURE:
        warnings.append("Plain http domains configured while SESSION_COOKIE_SECURE is enabled")

    if settings.SESSION_COOKIE_SAME_SITE == "none" and not settings.SESSION_COOKIE_SECURE:
        errors.append("SESSION_COOKIE_SAME_SITE=none requires SESSION_COOKIE_SECURE")

    if settings.IDENTITY_SERVICE_URL and not settings.INTERNAL_SHARED_SECRET:
        errors.append("IDENTITY_SERVICE_URL is set but INTERNAL_SHARED_SECRET is missing")

    if settings.RELAY_TIMEOUT_SECONDS > 300:
        warnings.append("RELAY_TIMEOUT_SECONDS above 5 minutes widens the token replay window")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "domains": domains,
        "timeout_seconds": settings.RELAY_TIMEOUT_SECONDS,
    }


# =============================================================================
# Example Usage & Documentation
# =============================================================================

if __name__ == "__main__":
    """
    Validate your .env configuration:
        python -m multidomain_login.config
    """
    print("=" * 80)
    print("MULTI-DOMAIN LOGIN CONFIGURATION")
    print("=" * 80)

    try:
        config = get_settings()

        print("\n✓ Configuration loaded successfully!\n")

        print("Relay Circuit:")
        for position, domain in enumerate(config.domains_list, start=1):
            print(f"  {position}. {domain}")
        print(f"  Timeout:        {config.RELAY_TIMEOUT_SECONDS} seconds")
        print(f"  Force logout:   {config.RELAY_FORCE_LOGOUT}")
        print(f"  Success path:   {config.RELAY_REDIRECT_SUCCESS or '<front>'}")
        print(f"  Error path:     {config.RELAY_REDIRECT_ERROR or '<error page>'}")

        print("\nSession Management:")
        print(f"  Cookie:         {config.SESSION_COOKIE_NAME}")
        print(f"  JWT Algorithm:  {config.SESSION_JWT_ALGORITHM}")
        print(f"  JWT Expiry:     {config.SESSION_JWT_EXPIRY_MINUTES} minutes")

        if config.identity_service_url_str:
            print("\nIdentity Service:")
            print(f"  URL:            {config.identity_service_url_str}")

        print("\n" + "=" * 80)
        print("CONFIGURATION VALIDATION")
        print("=" * 80 + "\n")

        status = validate_configuration(config)

        if status["valid"]:
            print("✓ All critical checks passed!")
        else:
            print("✗ Configuration errors found:")
            for error in status["errors"]:
                print(f"  - {error}")

        if status["warnings"]:
            print("\n⚠ Warnings:")
            for warning in status["warnings"]:
                print(f"  - {warning}")

        print("\n" + "=" * 80)

    except Exception as e:
        print(f"\n✗ Configuration error: {e}")
        print("""
Required variables:
  - RELAY_DOMAINS
  - RELAY_HASH_SALT
  - SESSION_SECRET_KEY
  - SESSION_JWT_SECRET

Optional variables:
  - RELAY_TIMEOUT_SECONDS (default: 60)
  - RELAY_FORCE_LOGOUT (default: false)
  - RELAY_ENABLE_EXTRA_LOGGING (default: false)
  - RELAY_REDIRECT_SUCCESS / RELAY_REDIRECT_ERROR
  - IDENTITY_SERVICE_URL / INTERNAL_SHARED_SECRET
  - LOG_LEVEL (default: INFO)
        """)
