import os


def _env_or(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v is not None else default


ENV = _env_or("ENV", "dev").lower()

DB_URL = _env_or("POS_DB_URL", _env_or("DB_URL", "sqlite+pysqlite:////tmp/cafepos.db"))
DB_SCHEMA = os.getenv("DB_SCHEMA") if not DB_URL.startswith("sqlite") else None

ALLOWED_ORIGINS = _env_or("ALLOWED_ORIGINS", "*")

# Hard-coded admin gate, carried over as-is (not a security boundary).
ADMIN_EMAIL = _env_or("POS_ADMIN_EMAIL", "admin@coffeeshop.com")
ADMIN_PASSWORD = _env_or("POS_ADMIN_PASSWORD", "admin123")

SHOP_NAME = _env_or("POS_SHOP_NAME", "COFFEE SHOP")
CURRENCY = _env_or("POS_CURRENCY", "BDT")

PAYMENT_METHODS = ("cash", "card", "mobile_banking")
