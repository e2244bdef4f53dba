from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    database_url: str = 'sqlite:///./supply_desk.db'
    snapshot_key: str = 'supply_desk_state_v3'

    remote_db_url: str | None = None
    remote_db_key: str | None = None
    remote_timeout_seconds: int = 30

    feed_url: str | None = None

    connectivity_probe_url: str = 'https://www.gstatic.com/generate_204'
    connectivity_timeout_seconds: int = 5
    offline_mode: bool = False

    catch_all_supplier: str = 'MARKET'
    sync_on_startup: bool = True
    log_level: str = 'INFO'

    @property
    def database_url_normalized(self) -> str:
        url = self.database_url.strip()
        if url.startswith('postgres://'):
            return 'postgresql+psycopg://' + url[len('postgres://') :]
        if url.startswith('postgresql://'):
            return 'postgresql+psycopg://' + url[len('postgresql://') :]
        return url


settings = Settings()
