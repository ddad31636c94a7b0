"""Predefined defaults for load test runs."""

# Defaults applied when a CLI option is omitted
LOADTEST_DEFAULTS = {
    "count": 100,
    "burst": 10,
    "delay": 2,
    "method": "GET",
    "rotation_mode": "serial",
    "threshold_profile": "default",
}

# Per-request timeout in seconds
REQUEST_TIMEOUT_SECONDS = 10

# Baselines and threshold profiles expire after 30 days
BASELINE_TTL_SECONDS = 30 * 24 * 60 * 60

# Storage namespaces, kept distinct so baselines never collide
PERFORMANCE_BASELINE_PREFIX = "loadchaos_baseline"
RESOURCE_BASELINE_PREFIX = "loadchaos_resource_baseline"
THRESHOLD_PROFILE_PREFIX = "loadchaos_thresholds"

DEFAULT_STORAGE_DIR = ".loadchaos/baselines"

# Named endpoint slugs and the paths they resolve to
ENDPOINT_PATHS = {
    "home": "/",
    "shop": "/shop/",
    "cart": "/cart/",
    "checkout": "/checkout/",
}
CUSTOM_ENDPOINT_PREFIX = "custom:"

# Body values with this prefix are read from disk
BODY_FILE_PREFIX = "file:"

# Cache-related response headers worth tallying (edge cache, page cache,
# CDN/object cache, age, hit count)
CACHE_HEADER_NAMES = ("x-ac", "x-nananana", "x-cache", "age", "x-cache-hits")

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/92.0.4515.107 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/14.1.2 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.114 Safari/537.36",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 14_6 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/14.0 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (iPad; CPU OS 14_6 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/14.0 Mobile/15E148 Safari/604.1",
]

# Default severity bands per metric kind
THRESHOLD_DEFAULTS = {
    "response_time": {"good": 1.0, "warn": 2.0, "critical": 3.0},  # seconds
    "memory_usage": {"good": 50.0, "warn": 70.0, "critical": 85.0},  # % of ceiling
    "error_rate": {"good": 1.0, "warn": 5.0, "critical": 10.0},  # %
}

# Calibrated band = base metric x factor
CALIBRATION_FACTORS = {"good": 1.0, "warn": 1.5, "critical": 2.0}
MIN_CALIBRATION_ERROR_RATE = 0.5

# Used when the memory ceiling is unlimited or unparseable
DEFAULT_MEMORY_LIMIT_MB = 128.0

# Approximate capacity projection horizons
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400
SECONDS_PER_MONTH = 2592000

MONITORING_LOG_PREFIX = "LOADCHAOS_METRICS"

HTTP_OK = 200
ERROR_STATUS = "ERROR"
