import os
from decimal import Decimal
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


def _env(*keys, default=None):
    for key in keys:
        value = os.getenv(key)
        if value is not None and value.strip() != "":
            return value.strip()
    return default


API_URL = _env("API_URL", "NEXT_PUBLIC_API_URL", default="http://localhost:3001").rstrip("/")
SITE_URL = _env("SITE_URL", default="http://localhost:3000").rstrip("/")
BACKEND_TIMEOUT = float(_env("BACKEND_TIMEOUT", default="10"))

STRIPE_SECRET_KEY = _env("STRIPE_SECRET_KEY")
STRIPE_PUBLISHABLE_KEY = _env(
    "STRIPE_PUBLISHABLE_KEY", "NEXT_PUBLIC_STRIPE_PUBLISHABLE_KEY", default=""
)

DATABASE_URL = _env("DATABASE_URL", default="sqlite:///./storefront.db")

JWT_SECRET = _env("JWT_SECRET")
JWT_ALGORITHM = _env("JWT_ALGORITHM", default="HS256")

CURRENCY = _env("CURRENCY", default="chf")
FREE_SHIPPING_THRESHOLD = Decimal(_env("FREE_SHIPPING_THRESHOLD", default="50"))
SHIPPING_FEE = Decimal(_env("SHIPPING_FEE", default="8"))
# No MWST by default; set e.g. 0.077 to charge Swiss VAT on the subtotal
TAX_RATE = Decimal(_env("TAX_RATE", default="0"))

PAYMENT_POLL_INTERVAL = float(_env("PAYMENT_POLL_INTERVAL", default="2"))
PAYMENT_POLL_ATTEMPTS = int(_env("PAYMENT_POLL_ATTEMPTS", default="15"))

MAX_UPLOAD_BYTES = int(_env("MAX_UPLOAD_BYTES", default=str(5 * 1024 * 1024)))
LOG_LEVEL = _env("LOG_LEVEL", default="INFO")
