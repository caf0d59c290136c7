from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    database_url: str
    jwt_secret_key: str = "your-secret-key-change-in-production"  # Default for development
    jwt_algorithm: str = "HS256"

    # Upper bound on waiting for a shift-pair critical section
    lock_timeout_seconds: float = 5.0

    # "never" | "always" | "same_week"
    auto_approve_policy: str = "never"
    notify_admins_on_decline: bool = False

    # A notification claimed longer ago than this is presumed lost and redelivered
    notification_claim_seconds: float = 60.0

    cors_origins: str = ""
    log_level: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
