"""
Deterministic hashing utilities.

Provides content-based identities for feature configurations.
"""

import hashlib
import json
from typing import Any


def hash_content(content: Any) -> str:
    """
    Compute a short stable hash of JSON-serializable content.

    Keys are sorted so logically equal mappings hash equally.

    Args:
        content: JSON-serializable object.

    Returns:
        12-character hex digest.
    """
    payload = json.dumps(content, sort_keys=True, default=str)
    return hashlib.md5(payload.encode()).hexdigest()[:12]


def hash_config(config: Any) -> str:
    """
    Compute hash of a Pydantic configuration object.

    Args:
        config: Configuration object.

    Returns:
        12-character hex digest.
    """
    if hasattr(config, "model_dump"):
        return hash_content(config.model_dump(mode="json"))
    return hash_content(str(config))
