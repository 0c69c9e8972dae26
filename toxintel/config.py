"""
Configuration module for Toxic Intelligence
Loads environment variables and provides default settings
"""

import os
from pathlib import Path
from typing import Dict, Any, FrozenSet
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

# Analysis API Configuration (OpenAI-compatible chat completions endpoint)
ANALYSIS_API_KEY = os.getenv("ANALYSIS_API_KEY", os.getenv("NVIDIA_API_KEY", ""))
ANALYSIS_API_URL = os.getenv("ANALYSIS_API_URL", "https://integrate.api.nvidia.com/v1/chat/completions")
ANALYSIS_MODEL = os.getenv("ANALYSIS_MODEL", "openai/gpt-oss-120b")
ANALYSIS_TEMPERATURE = float(os.getenv("ANALYSIS_TEMPERATURE", "0.3"))
ANALYSIS_MAX_TOKENS = int(os.getenv("ANALYSIS_MAX_TOKENS", "2048"))

# API Settings
BATCH_SIZE = int(os.getenv("BATCH_SIZE", "40"))
API_TIMEOUT = int(os.getenv("API_TIMEOUT", "60"))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
ANALYSIS_CONCURRENT_REQUESTS = int(os.getenv("ANALYSIS_CONCURRENT_REQUESTS", "4"))

# Operational Mode Flags
USE_ANALYSIS = os.getenv("USE_ANALYSIS", "True").lower() == "true"

# Cache Settings
CACHE_ENABLED = os.getenv("CACHE_ENABLED", "True").lower() == "true"
CACHE_TTL_DAYS = int(os.getenv("CACHE_TTL_DAYS", "7"))
CACHE_DIR = PROJECT_ROOT / os.getenv("CACHE_DIR", ".cache")

# Storage
DB_PATH = os.getenv("DB_PATH", str(PROJECT_ROOT / "toxintel.db"))

# Sender classification: names that refer to the person being analyzed.
# Comma-separated, matched after trimming and case-folding.
SELF_TOKENS: FrozenSet[str] = frozenset(
    token.strip().casefold()
    for token in os.getenv("SELF_TOKENS", "กู,me").split(",")
    if token.strip()
)

# Message listing
MESSAGES_DEFAULT_LIMIT = int(os.getenv("MESSAGES_DEFAULT_LIMIT", "50"))
MESSAGES_MAX_LIMIT = int(os.getenv("MESSAGES_MAX_LIMIT", "200"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Dev Server Settings
DEV_USE_RELOADER = os.getenv("TOXINTEL_DEV_RELOAD", "True").lower() == "true"


def get_config_summary() -> Dict[str, Any]:
    """Return a summary of current configuration."""
    return {
        "analysis": {
            "api_url": ANALYSIS_API_URL,
            "model": ANALYSIS_MODEL,
            "api_key_set": bool(ANALYSIS_API_KEY),
            "temperature": ANALYSIS_TEMPERATURE,
            "max_tokens": ANALYSIS_MAX_TOKENS,
            "enabled": USE_ANALYSIS,
        },
        "api": {
            "batch_size": BATCH_SIZE,
            "timeout": API_TIMEOUT,
            "max_retries": MAX_RETRIES,
            "concurrent_requests": ANALYSIS_CONCURRENT_REQUESTS,
        },
        "cache": {
            "enabled": CACHE_ENABLED,
            "ttl_days": CACHE_TTL_DAYS,
            "dir": str(CACHE_DIR),
        },
        "storage": {
            "db_path": DB_PATH,
        },
        "parsing": {
            "self_tokens": sorted(SELF_TOKENS),
        },
        "messages": {
            "default_limit": MESSAGES_DEFAULT_LIMIT,
            "max_limit": MESSAGES_MAX_LIMIT,
        },
    }


def validate_config() -> tuple[bool, str]:
    """Validate configuration. Returns (is_valid, message)."""
    if not ANALYSIS_API_KEY and USE_ANALYSIS:
        return False, "ANALYSIS_API_KEY not set in .env file (required when USE_ANALYSIS=True)"

    if not SELF_TOKENS:
        return False, "SELF_TOKENS is empty - no sender could ever be classified as SELF"

    if BATCH_SIZE < 1 or MAX_RETRIES < 1:
        return False, f"BATCH_SIZE ({BATCH_SIZE}) and MAX_RETRIES ({MAX_RETRIES}) must be >= 1"

    return True, "Configuration valid"


if __name__ == "__main__":
    # Print config summary for debugging
    import json
    print("Toxic Intelligence Configuration:")
    print(json.dumps(get_config_summary(), indent=2, ensure_ascii=False))
    print()
    valid, msg = validate_config()
    print(f"Validation: {msg}")
