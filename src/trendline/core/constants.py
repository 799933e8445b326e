"""Application-wide constants.

These are fixed values that don't change between environments.
For configurable values, see config.py Settings.
"""

# ─────────────────────────────────────────────────────────────
# Bonding curve parameters (must match the ledger program)
# ─────────────────────────────────────────────────────────────
CURVE_BASE_PRICE = 1_000_000  # base units per token at zero supply
CURVE_LINEAR_SLOPE = 100
CURVE_EXPONENTIAL_SCALE_UNIT = 10_000
CURVE_LOG_SCALE = 1_000
MAX_QUOTE_AMOUNT = 1_000_000  # per-request cap on tokens priced over HTTP

# ─────────────────────────────────────────────────────────────
# Trend factor windows
# ─────────────────────────────────────────────────────────────
ACTIVITY_WINDOW_MINUTES = 60
VOLUME_BASELINE_MINUTES = 1440  # 24h of per-minute buckets
HOLDER_MOMENTUM_DIVISOR = 10
CROSS_MARKET_PEERS = 10
SENTIMENT_CONTENT_CHARS = 500

# ─────────────────────────────────────────────────────────────
# Inference parsing
# ─────────────────────────────────────────────────────────────
DEFAULT_CONFIDENCE = 0.5
FALLBACK_REASONING = "Fallback calculation due to inference parsing error"
DEFAULT_REASONING = "Trend analysis completed"

# ─────────────────────────────────────────────────────────────
# Orchestrator priorities
# ─────────────────────────────────────────────────────────────
HIGH_PRIORITY_VOLUME = 10.0
MEDIUM_PRIORITY_VOLUME = 1.0
HIGH_PRIORITY_STALE_HOURS = 2.0
MEDIUM_PRIORITY_STALE_HOURS = 1.0
ORCHESTRATOR_INITIAL_DELAY_SECONDS = 5
CANDIDATE_MIN_VOLUME_24H = 1.0

# ─────────────────────────────────────────────────────────────
# Request cache
# ─────────────────────────────────────────────────────────────
INFLIGHT_REUSE_SECONDS = 5.0
RATE_LIMIT_BACKOFF_SECONDS = 0.5
RETRY_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY_SECONDS = 1.0

# ─────────────────────────────────────────────────────────────
# Ledger
# ─────────────────────────────────────────────────────────────
VELOCITY_LEDGER_SCALE = 1000  # velocities are sent as integers
TREND_SCORE_LEDGER_SCALE = 100
MARKET_ACCOUNT_CACHE_TTL_SECONDS = 10.0

# ─────────────────────────────────────────────────────────────
# Redis channels
# ─────────────────────────────────────────────────────────────
NOTIFICATION_CHANNEL_PREFIX = "trendline:notifications"
