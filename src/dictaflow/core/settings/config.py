"""
Centralized application configuration.

Edit the variables below to configure development settings.
"""

import logging
import os

# =============================================================================
# DEVELOPMENT SETTINGS - Edit these for local development
# =============================================================================
LOG_LEVEL = os.environ.get("DICTAFLOW_LOG_LEVEL", "INFO")  # DEBUG, INFO, ...
LOG_TO_CONSOLE = True  # Set to True to output logs to terminal
# =============================================================================

# =============================================================================
# HISTORY SETTINGS
# =============================================================================
MAX_HISTORY_ENTRIES = 50  # Number of transcription history records to keep
# =============================================================================

# =============================================================================
# PIPELINE DEFAULTS
# =============================================================================
DEFAULT_SAMPLE_RATE = 16000
DEFAULT_FORMATTING_TIMEOUT_S = 15.0
DEFAULT_FORMATTING_TAG = "formatted_text"
# =============================================================================


def get_log_level() -> int:
    """Get the logging level as an integer."""
    return getattr(logging, LOG_LEVEL.upper(), logging.INFO)
