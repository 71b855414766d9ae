import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _paths(name: str) -> list:
    raw = os.getenv(name, "")
    return [p.strip() for p in raw.split(os.pathsep) if p.strip()]


@dataclass
class Settings:
    # Web service settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "2345"))
    base_path: str = os.getenv("LIBRARY_BASE_PATH", "/api")

    # TLS; plain HTTP is served when either path is missing
    ssl_keyfile: Optional[str] = os.getenv("SSL_KEY_PATH")
    ssl_certfile: Optional[str] = os.getenv("SSL_CERT_PATH")

    # Database settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")

    # Books loaded by `serve` after clearing the store
    data_files: list = field(default_factory=lambda: _paths("LIBRARY_DATA_FILES"))

    # Pagination settings
    default_index: int = int(os.getenv("DEFAULT_INDEX", "0"))
    default_count: int = int(os.getenv("DEFAULT_COUNT", "5"))

    # Logging settings
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    trace: bool = _flag("LIBRARY_TRACE")

    # CORS: reflect any origin back unless a regex is given
    cors_origin_regex: str = os.getenv("CORS_ORIGIN_REGEX", ".*")

    # Client settings
    ws_url: str = os.getenv("LIBRARY_WS_URL", "http://127.0.0.1:2345")
    client_timeout: float = float(os.getenv("LIBRARY_CLIENT_TIMEOUT", "10"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Lending Library")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _flag("DEBUG")


settings = Settings()
