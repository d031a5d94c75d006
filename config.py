import logging
import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_MONGO_URL = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME = "dragon_mart"
DEFAULT_PORT = 4000


class ConfigError(RuntimeError):
    pass


class Settings(BaseModel):
    """
    Process configuration. Everything comes from the environment; the
    signing secret has no fallback.
    """
    mongo_url: str = Field(DEFAULT_MONGO_URL, description="MongoDB connection string")
    database_name: str = Field(DEFAULT_DATABASE_NAME, description="Database to use")
    jwt_secret: str = Field(..., min_length=1, description="Symmetric signing key for tokens")
    jwt_algorithm: str = "HS256"
    port: int = DEFAULT_PORT
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    admin_name: str = "Administrator"

    def __repr__(self) -> str:
        return (
            f"Settings(mongo_url=***, database_name={self.database_name!r}, "
            f"jwt_secret=***, port={self.port}, admin_email={self.admin_email!r})"
        )

    __str__ = __repr__

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        if environ is None:
            load_dotenv()
            environ = os.environ

        jwt_secret = (environ.get("JWT_SECRET") or "").strip()
        if not jwt_secret:
            raise ConfigError("JWT_SECRET is not set in environment variables")

        mongo_url = (environ.get("MONGO_URL") or environ.get("DATABASE_URL") or "").strip()
        if not mongo_url:
            logger.warning("MONGO_URL is not set, falling back to %s", DEFAULT_MONGO_URL)
            mongo_url = DEFAULT_MONGO_URL

        port_raw = environ.get("PORT") or str(DEFAULT_PORT)
        try:
            port = int(port_raw)
        except ValueError:
            raise ConfigError(f"PORT must be an integer, got {port_raw!r}")

        return cls(
            mongo_url=mongo_url,
            database_name=(environ.get("DATABASE_NAME") or DEFAULT_DATABASE_NAME).strip(),
            jwt_secret=jwt_secret,
            port=port,
            admin_email=(environ.get("ADMIN_EMAIL") or "").strip().lower() or None,
            admin_password=environ.get("ADMIN_PASSWORD") or None,
            admin_name=(environ.get("ADMIN_NAME") or "Administrator").strip(),
        )
