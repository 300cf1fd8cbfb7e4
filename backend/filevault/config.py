# filevault/config.py
import os
from dataclasses import asdict, dataclass, field
from typing import Mapping, Optional

from .errors import ConfigurationError
from .masking import mask_sensitive_values

MIN_KEY_BYTES = 32


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, loaded once at startup and never mutated."""
    encryption_key: bytes = field(repr=False)
    jwt_signing_key: str = field(default="", repr=False)
    jwt_alg: str = "HS256"
    jwt_audience: str = "authenticated"
    jwt_issuer: Optional[str] = None
    storage_dir: str = "uploads"
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)
    environment: str = "production"
    log_level: str = "INFO"
    db_pool_max: int = 10

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def public_view(self) -> dict:
        """Settings as a dict that is safe to log."""
        return mask_sensitive_values(asdict(self))


def load_encryption_key(raw: Optional[str], name: str = "ENCRYPTION_KEY") -> bytes:
    """Validate key material from the environment; fail fast when it is short."""
    if not raw:
        raise ConfigurationError(f"{name} is not set (at least {MIN_KEY_BYTES} bytes required)")
    material = raw.encode("utf-8")
    if len(material) < MIN_KEY_BYTES:
        raise ConfigurationError(f"{name} must be at least {MIN_KEY_BYTES} bytes long")
    return material


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def load_settings(environ: Optional[Mapping[str, str]] = None, key_env: str = "ENCRYPTION_KEY") -> Settings:
    """Read settings from the environment. Raises ConfigurationError on bad input.

    `key_env` names the variable holding the encryption key.
    """
    env = os.environ if environ is None else environ

    origins = env.get("CORS_ORIGINS", "http://localhost:3000")
    return Settings(
        encryption_key=load_encryption_key(env.get(key_env), key_env),
        jwt_signing_key=env.get("JWT_SIGNING_KEY", ""),
        jwt_alg=env.get("JWT_ALG", "HS256").strip().upper(),
        jwt_audience=env.get("JWT_AUDIENCE", "authenticated"),
        jwt_issuer=env.get("ISSUER") or None,
        storage_dir=env.get("STORAGE_DIR", "uploads"),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        environment=env.get("APP_ENV", "production").strip().lower(),
        log_level=env.get("LOG_LEVEL", "INFO").strip().upper(),
        db_pool_max=_int(env, "DB_POOL_MAX", 10),
    )
