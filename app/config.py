from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./data/db.sqlite3"
    data_dir: str = "./data"
    environment: str = "production"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]
    app_url: str = "http://localhost:8000"

    admin_api_key: str = ""  # empty = admin routes open
    admin_email: str = "admin@example.com"
    admin_password: str = "admin123"

    otp_length: int = 6
    otp_expiry_minutes: int = 5
    otp_max_attempts: int = 3
    session_days: int = 3
    session_cookie_name: str = "guest-session"

    textlk_api_token: str = ""  # empty = SMS delivery skipped
    textlk_sender_id: str = "WeddingPix"
    textlk_api_endpoint: str = "https://app.text.lk/api/http/sms/send"
    sms_country_code: str = "94"
    phone_pattern: str = r"^(0|94)?7[0-9]{8}$"
    send_welcome_sms: bool = False

    storage_backend: str = "local"  # "local" or "gcs"
    gcs_project_id: str = ""
    gcs_bucket_name: str = ""
    gcs_key_file: str = ""
    media_signing_key: str = ""
    signed_url_days: int = 7

    default_event_id: str = "default-event-id"
    max_upload_size_bytes: int = 10 * 1024 * 1024  # 10MB

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


settings = Settings()
