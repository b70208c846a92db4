"""Sign-in selectors, fallback keywords, URL markers and fixed headers."""

# ── Browser identity ─────────────────────────────────────────────────────────

DEVICE_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1920, "height": 1080}

# ── Locator candidates ───────────────────────────────────────────────────────
# Each entry is (selector, text). Text, when set, must appear in the element's
# text content (case-insensitive). Order is priority: first match wins.

IDENTITY_CANDIDATES = [
    ("#username", None),
    ('input[name="username"]', None),
    ('input[name="email"]', None),
    ('input[type="email"]', None),
    ('input[type="text"]', None),
    ('input[placeholder*="email" i]', None),
    ('input[placeholder*="username" i]', None),
    ('input[placeholder*="login" i]', None),
    ('[data-testid*="email"]', None),
    ('[data-testid*="username"]', None),
]

SECRET_CANDIDATES = [
    ("#password", None),
    ('input[name="password"]', None),
    ('input[type="password"]', None),
    ('input[placeholder*="password" i]', None),
    ('[data-testid*="password"]', None),
]

SUBMIT_CANDIDATES = [
    ('button[type="submit"]', None),
    ('button[data-testid*="submit"]', None),
    ('button[data-testid*="login"]', None),
    ('button[data-testid*="sign"]', None),
    ('input[type="submit"]', None),
    ("button", "sign in"),
    ("button", "log in"),
    ("button", "continue"),
    ('[aria-label*="sign" i]', None),
    ('[aria-label*="log" i]', None),
]

# ── Fallback scan ────────────────────────────────────────────────────────────

IDENTITY_KEYWORDS = ["email", "user", "login"]
SECRET_KEYWORDS = ["password"]
SUBMIT_KEYWORDS = ["sign", "log", "continue", "submit"]

# Generic element kinds scanned per role, in order.
IDENTITY_SCAN_KINDS = ["input"]
SECRET_SCAN_KINDS = ["input"]
SUBMIT_SCAN_KINDS = ["button", 'input[type="submit"]']

# Input types that can never fill a role.
IDENTITY_EXCLUDED_TYPES = ["password", "hidden", "submit", "button", "checkbox", "radio"]
SECRET_EXCLUDED_TYPES = ["hidden", "submit", "button", "checkbox", "radio"]
SUBMIT_EXCLUDED_TYPES = ["hidden"]

CONFIRM_KEY = "Enter"

# ── Login detection ──────────────────────────────────────────────────────────

SIGN_IN_PATH_SEGMENTS = frozenset({"sign-in", "signin", "sign_in", "login"})

# ── Challenge detection ──────────────────────────────────────────────────────

CHALLENGE_INDICATORS = [
    "Just a moment...",
    "Checking your browser",
    "cf-challenge",
    "challenge-platform",
    "turnstile",
]

# ── Forwarding ───────────────────────────────────────────────────────────────

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Dropped from visitor requests before forwarding.
STRIPPED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {
    "host",
    "cookie",
    "authorization",
    "user-agent",
    "content-length",
    "accept-encoding",
}

# Dropped from upstream responses (httpx has already decoded the body).
STRIPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {
    "content-encoding",
    "content-length",
}

POWERED_BY = "Shared Session Broker"
ADMIN_PREFIX = "/_broker"
