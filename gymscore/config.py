from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """App settings loaded from env/.env (pydantic v2 style)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Spreadsheet bridge (web app deployed from the sheet's script editor).
    gas_web_app_url: str = ""
    sheet_timeout_sec: float = 15.0
    # Bounded wait for the global outbound-call lock.
    sheet_lock_timeout_sec: float = 30.0
    sheet_load_attempts: int = 3
    sheet_retry_base_sec: float = 1.0
    # Whether the sheet payload carries a trailing total column.
    sheet_include_total: bool = False

    load_from_sheet_on_start: bool = True
    startup_load_delay_sec: float = 3.0
    # Pause between the women/men loads to stay under the bridge's quota.
    startup_load_gap_sec: float = 1.0

    storage_dir: str = "data"
    snapshots_enabled: bool = True


settings = Settings()
