# Constants for the offer acquisition pipeline.

# Seller categories (registry + intent)
CATEGORY_SNEAKERS = "sneakers"
CATEGORY_OUTDOOR = "outdoor"
CATEGORY_CYCLING = "cycling"
CATEGORY_PET = "pet"
CATEGORY_OTHER = "other"  # classifier only, never a registry category

ALL_CATEGORIES = {CATEGORY_SNEAKERS, CATEGORY_OUTDOOR, CATEGORY_CYCLING, CATEGORY_PET}

CATEGORY_LABELS = {
    CATEGORY_SNEAKERS: "Sneakers",
    CATEGORY_OUTDOOR: "Outdoor",
    CATEGORY_CYCLING: "Cycling",
    CATEGORY_PET: "Pet supplies",
    CATEGORY_OTHER: "General",
}

# Registry entries carrying one of these tags are never picked for live offers
OPT_OUT_TAGS = {"no-offers", "health-only"}
DEFAULT_WEIGHT = 100

# Remote tool protocol
JSONRPC_VERSION = "2.0"
METHOD_TOOLS_LIST = "tools/list"
METHOD_TOOLS_CALL = "tools/call"
CATALOG_SEARCH_TOOL = "search_shop_catalog"

# Relevance scoring weights
SCORE_REQUIRED = 6
SCORE_PREFERRED = 2
SCORE_EXCLUDED = -7

# Term caps for intent specs
MAX_REQUIRED_TERMS = 6
MAX_PREFERRED_TERMS = 6
MAX_EXCLUDED_TERMS = 10
MAX_TERM_LEN = 32
MAX_QUERY_LEN = 80

# Reliability labels from registry weight
VERIFIED_MIN_WEIGHT = 120
NEW_MAX_WEIGHT = 50
NEW_STORE_TAG = "new"

# Currencies shown with a symbol; anything else is prefixed by its code
CURRENCY_SYMBOLS = {
    "GBP": "£",
    "USD": "$",
    "EUR": "€",
    "JPY": "¥",
}

PLACEHOLDER_IMAGE_HOST = "placehold.co"
LIVE_SOURCE_LABEL = "Live store response"
MOCK_SOURCE_LABEL = "Live pricing, curated sellers"
# Shown for live offers whose store gave no readable price
PRICE_UNKNOWN_TEXT = "See store for price"
