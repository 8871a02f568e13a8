"""
Configuration module for govsig.

Centralizes tunables with environment variable support. Values are read
once at import time; CLI flags override them per invocation.
"""

import os
from typing import Dict

# ============================================================
# Logging
# ============================================================

LOG_LEVEL = os.getenv("GOVSIG_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("GOVSIG_LOG_FORMAT", "text")  # text|json
LOG_FILE = os.getenv("GOVSIG_LOG_FILE", "")

# ============================================================
# Hashing
# ============================================================

# Read size used when streaming artifacts through SHA-256
HASH_CHUNK_SIZE = int(os.getenv("GOVSIG_HASH_CHUNK_SIZE", "65536"))

# ============================================================
# Default output paths
# ============================================================

SIGNATURE_OUTPUT = os.getenv("GOVSIG_SIGNATURE_OUTPUT", "signature.json")
KEY_OUTPUT = os.getenv("GOVSIG_KEY_OUTPUT", "governance.key")
AGGREGATE_OUTPUT = os.getenv("GOVSIG_AGGREGATE_OUTPUT", "aggregate.json")


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Check configured values for obvious mistakes.
    Returns dict of setting -> ok.
    """
    return {
        "log_level": LOG_LEVEL.upper() in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
        "log_format": LOG_FORMAT in ("text", "json"),
        "hash_chunk_size": HASH_CHUNK_SIZE > 0,
    }


# ============================================================
# Feature Flags
# ============================================================

def is_json_logging() -> bool:
    """Check if structured JSON logging is requested."""
    return LOG_FORMAT == "json"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("GOVSIG_DEBUG", "").lower() in ("1", "true", "yes")


def effective_log_level() -> str:
    """Log level after applying the debug flag."""
    return "DEBUG" if is_debug() else LOG_LEVEL.upper()
