"""
Deposit Monitoring Configuration
Timings, windows and external service endpoints.
All values can be overridden from the environment (.env supported).
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


# ============================================
# CONNECTION LIFECYCLE
# ============================================

# Re-evaluation period while a subscription is open (seconds)
FAST_INTERVAL = _float_env("MONITOR_FAST_INTERVAL", 5.0)

# Re-evaluation period while idle (seconds)
SLOW_INTERVAL = _float_env("MONITOR_SLOW_INTERVAL", 30.0)

# Fixed delay before re-opening a dropped subscription (seconds)
RECONNECT_DELAY = _float_env("MONITOR_RECONNECT_DELAY", 5.0)

# Websocket keepalive ping period (seconds)
PING_INTERVAL = _float_env("MONITOR_PING_INTERVAL", 30.0)

# Subscription confirmation timeout (seconds)
SUBSCRIBE_TIMEOUT = _float_env("MONITOR_SUBSCRIBE_TIMEOUT", 10.0)

# ============================================
# MONITORING WINDOWS
# ============================================

DEFAULT_TTL_MINUTES = _float_env("MONITOR_DEFAULT_TTL_MINUTES", 5.0)

PENDING_TTL_MINUTES = _float_env("MONITOR_PENDING_TTL_MINUTES", 5.0)

# Delay before the first-deposit auto-deploy after a manual check (seconds)
ONBOARDING_DEPLOY_DELAY = _float_env("MONITOR_ONBOARDING_DEPLOY_DELAY", 2.0)

# Balances at or below this are treated as "no funds" (USDC)
DUST_THRESHOLD = "0.01"

# ============================================
# EXTERNAL SERVICES
# ============================================

TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")

DEPLOY_EXECUTOR_URL = os.getenv("DEPLOY_EXECUTOR_URL", "http://localhost:8000")

DEPLOY_TIMEOUT = _float_env("DEPLOY_TIMEOUT", 120.0)

YIELDS_URL = "https://yields.llama.fi/pools"
