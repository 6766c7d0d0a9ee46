import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable


DEFAULT_DB_PATH = os.getenv("DB_PATH", str(Path(__file__).resolve().with_name("gateway.db")))
DEFAULT_DATABASE_URL = f"sqlite:///{DEFAULT_DB_PATH}"


logger = logging.getLogger(__name__)


def _bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() not in {"0", "false", ""}


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    try:
        return float(str(raw).strip() or default)
    except (TypeError, ValueError):
        return float(default)


def _str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = str(raw).strip()
    return value or default


def _env_files() -> Iterable[Path]:
    """Yield candidate environment files in priority order."""

    paths: list[str] = []
    override = os.getenv("OPTIONS_GATEWAY_ENV_FILE")
    if override:
        paths.append(override)
    paths.append("/etc/options-gateway/gateway.env")

    seen: set[Path] = set()
    for raw in paths:
        if not raw:
            continue
        candidate = Path(raw).expanduser()
        if candidate in seen:
            continue
        seen.add(candidate)
        yield candidate


def _load_environment_from_file(path: Path) -> None:
    """Load KEY=VALUE pairs from *path* into ``os.environ`` if missing."""

    try:
        text = path.read_text()
    except FileNotFoundError:
        return
    except OSError:
        logger.warning("config env_file_unreadable path=%s", path)
        return

    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        lexer = shlex.shlex(raw_line, posix=True)
        lexer.whitespace_split = True
        lexer.commenters = "#"
        try:
            tokens = list(lexer)
        except ValueError:
            # Skip malformed lines.
            continue

        for token in tokens:
            if token == "export" or "=" not in token:
                continue
            name, value = token.split("=", 1)
            name = name.strip()
            if not name:
                continue
            current = os.getenv(name)
            if current is None or not current.strip():
                os.environ[name] = value.strip()


def _load_environment() -> None:
    for candidate in _env_files():
        _load_environment_from_file(candidate)


_load_environment()


@dataclass
class Settings:
    run_migrations: bool = _bool("RUN_MIGRATIONS", "true")
    database_url: str = os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL
    http_timeout: float = _float("HTTP_TIMEOUT", 10.0)
    metrics_enabled: bool = _bool("METRICS_ENABLED", "false")

    # Upstream failure policy
    upstream_retry_delay: float = _float("UPSTREAM_RETRY_DELAY", 5.0)
    ltp_min_interval: float = _float("LTP_MIN_INTERVAL", 2.0)
    expiry_cache_ttl: float = _float("EXPIRY_CACHE_TTL", 3600.0)

    # Upstream endpoints and credentials
    ltp_base_url: str = _str("LTP_BASE_URL", "https://login.ltpcalculator.com")
    ltp_username: str = os.getenv("LTP_USERNAME", "")
    ltp_password: str = os.getenv("LTP_PASSWORD", "")
    upstox_base_url: str = _str("UPSTOX_BASE_URL", "https://service.upstox.com")
    yahoo_base_url: str = _str("YAHOO_BASE_URL", "https://query1.finance.yahoo.com")
    nse_base_url: str = _str("NSE_BASE_URL", "https://www.nseindia.com")

    # Response behaviour
    expose_error_details: bool = _bool("EXPOSE_ERROR_DETAILS", "false")
    option_chain_simulate_on_failure: bool = _bool(
        "OPTION_CHAIN_SIMULATE_ON_FAILURE", "false"
    )


settings = Settings()

if settings.upstream_retry_delay < 0:
    settings.upstream_retry_delay = 0.0
if settings.expiry_cache_ttl <= 0:
    settings.expiry_cache_ttl = 3600.0

logger.info(
    "config startup database_url=%s ltp_base_url=%s expose_error_details=%s",
    settings.database_url,
    settings.ltp_base_url,
    settings.expose_error_details,
)

if not (settings.ltp_username and settings.ltp_password):
    # The rest of the gateway works without LTP Calculator credentials.
    logger.warning("config ltp_credentials_missing")
