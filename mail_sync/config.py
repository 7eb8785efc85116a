"""
Configuration settings for the mail_sync app.

This module centralizes all configuration settings for mailbox synchronization
and outbound sending, pulling values from environment variables with sensible
defaults.
"""

import os

from django.conf import settings

# Default values - will be overridden by environment variables if set
DEFAULT_CONFIG = {
    # Synchronization settings
    "SYNC_WINDOW_DAYS": 30,  # Fetch messages received in the last 30 days
    "FETCH_BATCH_SIZE": 10,  # Message bodies in flight per FETCH command
    "MAX_MESSAGES_PER_SYNC": 500,
    "SYNC_LOCK_TIMEOUT": 300,  # Lease on one (user, account) sync, seconds
    "SYNC_INTERVAL": 900,  # Default: 15 minutes between scheduled syncs
    "ATTACHMENT_SIZE_LIMIT": 10 * 1024 * 1024,  # Default: 10MB
    # Task retry settings
    "MAX_RETRIES": 3,
    "RETRY_DELAY": 300,  # Default: 5 minutes
    # Security settings
    "ENCRYPTION_KEY": None,  # Must be set in environment
    "KDF_ITERATIONS": 100000,
    "IMAP_VERIFY_SSL": True,
    "SMTP_VERIFY_SSL": True,
    # Connection timeouts (in seconds)
    "IMAP_TIMEOUT": 30,
    "SMTP_TIMEOUT": 30,
    "SMTP_VERIFY_BEFORE_SEND": True,
    # Account defaults
    "IMAP_DEFAULT_PORT": 993,
    "SMTP_DEFAULT_PORT": 587,
}


def get_config(key, default=None):
    """
    Get a configuration value from environment variables or settings with fallback.

    Args:
        key: The configuration key to look up
        default: Default value if not found

    Returns:
        The configuration value
    """
    if default is None:
        default = DEFAULT_CONFIG.get(key)

    # Bridge the credential key to the project-wide setting.
    if key == "ENCRYPTION_KEY" and getattr(settings, "FIELD_ENCRYPTION_KEY", None):
        return settings.FIELD_ENCRYPTION_KEY

    # Check if the key exists in the environment with EMAIL_ prefix
    env_key = f"EMAIL_{key}"
    if env_key in os.environ:
        value = os.environ[env_key]

        # Try to convert value to appropriate type based on default
        if isinstance(default, bool):
            return value.lower() in ("true", "yes", "1")
        elif isinstance(default, int):
            try:
                return int(value)
            except (ValueError, TypeError):
                return default
        elif isinstance(default, float):
            try:
                return float(value)
            except (ValueError, TypeError):
                return default
        return value

    # Check if the key exists in Django settings
    if hasattr(settings, env_key):
        return getattr(settings, env_key)

    return default
