import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pos.db")
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 1440))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",")]

# Table reservations
RESERVATION_HOLD_MINUTES = int(os.getenv("RESERVATION_HOLD_MINUTES", 120))
RESERVATION_SWEEP_INTERVAL_SECONDS = int(os.getenv("RESERVATION_SWEEP_INTERVAL_SECONDS", 60))
RESERVATION_SWEEP_ENABLED = os.getenv("RESERVATION_SWEEP_ENABLED", "true").lower() in ("1", "true", "yes")

# Billing defaults applied to new locations (percent)
DEFAULT_CGST_RATE = float(os.getenv("DEFAULT_CGST_RATE", 0))
DEFAULT_SGST_RATE = float(os.getenv("DEFAULT_SGST_RATE", 0))

ORDER_CACHE_TTL_SECONDS = int(os.getenv("ORDER_CACHE_TTL_SECONDS", 300))
ORDER_CACHE_MAX_ENTRIES = int(os.getenv("ORDER_CACHE_MAX_ENTRIES", 2000))
