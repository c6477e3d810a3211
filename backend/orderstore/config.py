from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./orderstore.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"
    SQLITE_BUSY_TIMEOUT: int = 30
    # "reject" aborts checkout on a bad coupon, "ignore" places the order without discount
    COUPON_FAILURE_POLICY: str = "reject"
    DEFAULT_SHIPPING: Decimal = Decimal("0.00")
    TAX_RATE: Decimal = Decimal("0")
    ORDER_NUMBER_PREFIX: str = "ORD"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
