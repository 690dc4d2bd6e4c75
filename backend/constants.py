"""
Centralized Constants - SINGLE SOURCE OF TRUTH

Supported platforms, scraping methods, setting types, timeouts and
confidence thresholds are defined here and imported elsewhere.

DO NOT duplicate these definitions in other files.
"""

# =============================================================================
# PLATFORMS
# =============================================================================

# Slugs accepted by PlatformRegistry.register_platform
SUPPORTED_PLATFORMS = [
    'google',
    'facebook',
    'linkedin',
    'openai',
    'anthropic',
    'microsoft',
    'twitter',
    'instagram',
]

# Used when a platform's scraping config omits rateLimit
DEFAULT_RATE_LIMIT = {
    'requestsPerMinute': 10,
    'cooldownMinutes': 1,
}

# Inclusive bounds enforced on scraping_config.rateLimit
RATE_LIMIT_RPM_RANGE = (1, 60)
RATE_LIMIT_COOLDOWN_RANGE = (0, 60)

PLATFORM_CONFIG_CACHE_MINUTES = 5


# =============================================================================
# SCRAPING
# =============================================================================

SCRAPING_METHOD_EXTENSION = 'extension'
SCRAPING_METHOD_FIRECRAWL = 'firecrawl'
SCRAPING_METHOD_OCR = 'ocr'

SCRAPING_METHODS = [SCRAPING_METHOD_EXTENSION, SCRAPING_METHOD_FIRECRAWL, SCRAPING_METHOD_OCR]

# Seconds. Methods without an entry use 'default'.
SCRAPING_TIMEOUTS = {
    'default': 30,
    'firecrawl': 60,
    'ocr': 120,
}

SCAN_STATUS_PENDING = 'pending'
SCAN_STATUS_IN_PROGRESS = 'in_progress'
SCAN_STATUS_COMPLETED = 'completed'
SCAN_STATUS_FAILED = 'failed'
SCAN_STATUS_PARTIAL = 'partial'

SCAN_STATUSES = [
    SCAN_STATUS_PENDING,
    SCAN_STATUS_IN_PROGRESS,
    SCAN_STATUS_COMPLETED,
    SCAN_STATUS_FAILED,
    SCAN_STATUS_PARTIAL,
]


def get_scraping_timeout(method: str, timeouts: dict = None) -> float:
    """
    Get the timeout in seconds for a scraping method.

    Args:
        method: Scraping method ('extension', 'firecrawl', 'ocr', ...)
        timeouts: Optional override table, same shape as SCRAPING_TIMEOUTS

    Returns:
        Timeout in seconds, falling back to the 'default' entry
    """
    table = timeouts or SCRAPING_TIMEOUTS
    key = (method or '').lower()
    if key in table:
        return table[key]
    return table.get('default', SCRAPING_TIMEOUTS['default'])


# =============================================================================
# TEMPLATES
# =============================================================================

SETTING_TYPE_TOGGLE = 'toggle'
SETTING_TYPE_RADIO = 'radio'
SETTING_TYPE_SELECT = 'select'
SETTING_TYPE_TEXT = 'text'

SETTING_TYPES = [SETTING_TYPE_TOGGLE, SETTING_TYPE_RADIO, SETTING_TYPE_SELECT, SETTING_TYPE_TEXT]

RISK_LEVELS = ['low', 'medium', 'high']
DEFAULT_RISK_LEVEL = 'medium'

# Strings that read as an on/off switch when inferring a setting type
TOGGLE_VOCABULARY = {'on', 'off', 'enabled', 'disabled', 'true', 'false'}

# Strings that coerce to True when a select becomes a toggle
TRUTHY_CHOICES = {'enabled', 'on', 'true', '1'}

CONFIDENCE_THRESHOLDS = {
    'template_match': 0.85,   # Use an existing template without looking further
    'data_extraction': 0.7,   # Minimum score to accept the best template
    'setting_detection': 0.6,
}

DIFFERENCE_IMPACTS = ['breaking', 'minor', 'cosmetic']
