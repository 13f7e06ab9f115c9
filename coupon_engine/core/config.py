import os
from decimal import Decimal

from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Coupon Engine")
    API_V1_PREFIX: str = os.getenv("API_V1_PREFIX", "/api/v1")

    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017/?replicaSet=rs0")
    MONGO_DB: str = os.getenv("MONGO_DB", "coupon_engine")

    JWT_ACCESS_TOKEN_SECRET: str = os.getenv("JWT_ACCESS_TOKEN_SECRET", "change-me")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Checkout pricing (amounts in major currency units)
    CURRENCY: str = os.getenv("CURRENCY", "INR")
    FREE_SHIPPING_THRESHOLD: Decimal = Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "999"))
    SHIPPING_FEE: Decimal = Decimal(os.getenv("SHIPPING_FEE", "49"))
    TAX_RATE: Decimal = Decimal(os.getenv("TAX_RATE", "0.18"))


settings = Settings()
