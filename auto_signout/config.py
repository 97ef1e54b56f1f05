from pydantic import BaseModel, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CollectionConfig(BaseModel):
    name: str
    history_collection: str
    owner_field: str


def _default_collections() -> list[CollectionConfig]:
    return [
        CollectionConfig(name='students', history_collection='student_history', owner_field='student_id'),
        CollectionConfig(name='tutors', history_collection='tutor_history', owner_field='tutor_id'),
    ]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'Attendance Auto Sign-Out'
    app_env: str = 'local'
    app_timezone: str = 'UTC'
    database_url: str = 'sqlite:///./auto_signout.db'
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200

    auto_sign_out_enabled: bool = True
    auto_sign_out_interval_minutes: int = 1440
    auto_sign_out_threshold_hours: float = 8
    auto_sign_out_page_size: int = 1000
    auto_sign_out_batch_limit: int = 450
    store_batch_ceiling: int = 500
    side_effect_concurrency: int = 25
    auto_sign_out_collections: list[CollectionConfig] = _default_collections()

    enable_email_notifications: bool = True
    resend_api_key: str = ''
    resend_from: str = ''
    resend_api_base: str = 'https://api.resend.com'
    email_timeout_seconds: float = 10

    @model_validator(mode='after')
    def _check_limits(self) -> 'Settings':
        if self.auto_sign_out_batch_limit < 1:
            raise ValueError('auto_sign_out_batch_limit must be at least 1')
        if self.auto_sign_out_batch_limit >= self.store_batch_ceiling:
            raise ValueError('auto_sign_out_batch_limit must stay below store_batch_ceiling')
        if self.auto_sign_out_page_size < 1:
            raise ValueError('auto_sign_out_page_size must be at least 1')
        if self.side_effect_concurrency < 1:
            raise ValueError('side_effect_concurrency must be at least 1')
        if self.auto_sign_out_interval_minutes < 1:
            raise ValueError('auto_sign_out_interval_minutes must be at least 1')
        return self


settings = Settings()
