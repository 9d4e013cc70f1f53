import os
from dataclasses import dataclass
import typing

RECORDS_FILE = "db.json"
TOKENS_FILE = "tokens.json"


@dataclass(frozen=True)
class Settings:
    pin: str
    host: str
    port: int
    data_dir: str
    location_label: str
    cors_origins: typing.Tuple[str, ...]
    log_level: str

    @property
    def records_path(self) -> str:
        return os.path.join(self.data_dir, RECORDS_FILE)

    @property
    def tokens_path(self) -> str:
        return os.path.join(self.data_dir, TOKENS_FILE)


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


def load_settings() -> Settings:
    origins = tuple(o.strip() for o in _getenv("CORS_ORIGINS", "*").split(",") if o.strip())
    return Settings(
        pin=_getenv("PIN"),
        host=_getenv("HOST", "0.0.0.0"),
        port=_getint("PORT", 3000),
        data_dir=_getenv("DATA_DIR", "data"),
        location_label=_getenv("LOCATION_LABEL"),
        cors_origins=origins or ("*",),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
    )
