from functools import lru_cache
from typing import List, Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    env: str = "local"

    # explicit URL wins over the postgres_* parts
    database_url_override: Optional[str] = None
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_db: str = "storefront"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    # identity is issued elsewhere, we only decode it
    secret_key: str = "change-me"
    algorithm: str = "HS256"

    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    currency: str = "INR"

    free_shipping_threshold: float = 500
    shipping_flat_rate: float = 50

    brevo_api_key: str = ""
    mail_from: str = "orders@example.com"
    store_name: str = "Storefront"
    admin_emails: List[str] = []

    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    @property
    def database_url(self):
        if self.database_url_override:
            return self.database_url_override
        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """FastAPI dependency, overridden in tests."""
    return settings
