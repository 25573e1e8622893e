from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Gateway
    gateway_url: str = "http://127.0.0.1:54321"
    gateway_anon_key: str = ""
    request_timeout_seconds: float = 30.0

    # Receipts
    receipt_bucket: str = "receipts"
    max_receipt_bytes: int = 5 * 1024 * 1024
    allowed_receipt_types: list[str] = ["image/jpeg", "image/png", "application/pdf"]
    signed_url_ttl_seconds: int = 3600

    # Approvals
    payment_queue_limit: int = 100

    # Invitations
    invitation_expiry_days: int = 7
    app_base_url: str = "http://localhost:4200"

    default_currency: str = "USD"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "EXPENSE_APP_"


@lru_cache
def get_settings() -> Settings:
    return Settings()
