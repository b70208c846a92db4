"""Application configuration loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
DATA_DIR = Path(os.getenv("DATA_DIR", Path(__file__).parent.parent / "data"))
DB_PATH = DATA_DIR / "broker.db"
LOG_DIR = DATA_DIR / "logs"

# Acquisition account
BROKER_IDENTITY = os.getenv("BROKER_IDENTITY", "")
BROKER_SECRET = os.getenv("BROKER_SECRET", "")

# Upstream
SIGN_IN_URL = os.getenv("SIGN_IN_URL", "https://elements.envato.com/sign-in")
UPSTREAM_URL = os.getenv("UPSTREAM_URL", "https://elements.envato.com")

# Session lifetime
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", str(4 * 60 * 60)))
REFRESH_INTERVAL_SECONDS = int(os.getenv("REFRESH_INTERVAL_SECONDS", str(3 * 60 * 60)))

# Browser
BROWSER_HEADLESS = os.getenv("BROWSER_HEADLESS", "true").lower() == "true"
NAVIGATION_TIMEOUT_MS = int(os.getenv("NAVIGATION_TIMEOUT_MS", "20000"))
NETWORK_IDLE_TIMEOUT_MS = int(os.getenv("NETWORK_IDLE_TIMEOUT_MS", "5000"))
LOCATOR_TIMEOUT_MS = int(os.getenv("LOCATOR_TIMEOUT_MS", "8000"))
LOCATOR_FOLLOWUP_TIMEOUT_MS = int(os.getenv("LOCATOR_FOLLOWUP_TIMEOUT_MS", "1000"))
SETTLE_TIMEOUT_MS = int(os.getenv("SETTLE_TIMEOUT_MS", "20000"))
SETTLE_GRACE_MS = int(os.getenv("SETTLE_GRACE_MS", "3000"))
TYPING_DELAY_MS = int(os.getenv("TYPING_DELAY_MS", "100"))
CHALLENGE_TIMEOUT_MS = int(os.getenv("CHALLENGE_TIMEOUT_MS", "15000"))
ACQUISITION_TIMEOUT_SECONDS = float(os.getenv("ACQUISITION_TIMEOUT_SECONDS", "60"))

# Escalation
LOGIN_REJECTED_ALERT_THRESHOLD = int(os.getenv("LOGIN_REJECTED_ALERT_THRESHOLD", "3"))

# Broker service
BROKER_HOST = os.getenv("BROKER_HOST", "127.0.0.1")
BROKER_PORT = int(os.getenv("BROKER_PORT", "3000"))
BROKER_URL = os.getenv("BROKER_URL", f"http://{BROKER_HOST}:{BROKER_PORT}")

# Operator gate (disabled when either is empty)
PROXY_USERNAME = os.getenv("PROXY_USERNAME", "")
PROXY_PASSWORD = os.getenv("PROXY_PASSWORD", "")

UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "30"))


def ensure_dirs():
    """Create required data directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
