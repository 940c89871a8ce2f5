import os
from dataclasses import dataclass

DEFAULT_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d")


@dataclass(frozen=True)
class Settings:
    data_path: str = "guild_ledger_data.json"
    templates_path: str = "guild_ledger_templates.json"
    # REST backend is used instead of the JSON file when set
    api_url: str = ""
    api_token: str = ""
    date_formats: tuple[str, ...] = DEFAULT_DATE_FORMATS
    log_level: str = "INFO"


def _env(name: str) -> str:
    return os.getenv(name, "").strip()


def load_settings() -> Settings:
    formats = tuple(
        f.strip() for f in _env("GUILD_LEDGER_DATE_FORMATS").split(",") if f.strip()
    )
    return Settings(
        data_path=_env("GUILD_LEDGER_DATA_PATH") or Settings.data_path,
        templates_path=_env("GUILD_LEDGER_TEMPLATES_PATH") or Settings.templates_path,
        api_url=_env("GUILD_LEDGER_API_URL").rstrip("/"),
        api_token=_env("GUILD_LEDGER_API_TOKEN"),
        date_formats=formats or DEFAULT_DATE_FORMATS,
        log_level=(_env("GUILD_LEDGER_LOG_LEVEL") or Settings.log_level).upper(),
    )
