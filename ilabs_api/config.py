"""Configuration defaults, polling constants, and .env loading.

WHY: Endpoint, user agent, and the user key differ between deployments
(production, staging, a local mock). Keeping them in one module, with
environment overrides, means callers rarely have to pass them explicitly.

HOW: python-dotenv loads the .env file on import. Defaults are module-level
constants. load_user_key() gives a clear error when the key is missing.

RULES:
- The user key is loaded from the environment, never hardcoded
- ILABS_ENDPOINT and ILABS_USER_AGENT override the built-in defaults
- Explicit constructor arguments on the client always win over these values
- Polling constants are in seconds
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the working directory
load_dotenv()

# ---------------------------------------------------------------------------
# API configuration defaults
# ---------------------------------------------------------------------------

DEFAULT_ENDPOINT = "https://ilabs-api.innodata.com/v1"
DEFAULT_USER_AGENT = "@innodatalabs/ilabs-api"

ILABS_ENDPOINT = os.getenv("ILABS_ENDPOINT", DEFAULT_ENDPOINT)
ILABS_USER_AGENT = os.getenv("ILABS_USER_AGENT", DEFAULT_USER_AGENT)

SUCCESS_STATUS_CODES: frozenset[int] = frozenset({200, 201, 202})
"""HTTP statuses the service uses for success. Anything else is an error."""

# ---------------------------------------------------------------------------
# Polling and HTTP timeouts
# ---------------------------------------------------------------------------

POLL_INITIAL_INTERVAL_S = 1.0
POLL_PIN_THRESHOLD_S = 30.0  # intervals above this jump straight to the max
POLL_MAX_INTERVAL_S = 60.0
POLL_MAX_ATTEMPTS = 100

HTTP_TIMEOUT_S = 300.0
HTTP_CONNECT_TIMEOUT_S = 30.0


MISSING_USER_KEY_MESSAGE = (
    "ilabs user key not configured. "
    "Pass user_key= to the client or set ILABS_USER_KEY in the .env file."
)


class MissingUserKeyError(ValueError):
    """Raised when an authenticated call is made without a user key."""


def get_user_key() -> str | None:
    """Return ILABS_USER_KEY from the environment, or None if unset or blank."""
    return os.getenv("ILABS_USER_KEY", "").strip() or None


def load_user_key() -> str:
    """Load the ilabs user key from the environment.

    WHY: Every call except ping() needs the key. Loading it from the
    environment (via .env) keeps it out of source code.

    HOW: Reads ILABS_USER_KEY from os.environ (populated by python-dotenv).

    RULES:
    - Raises MissingUserKeyError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = get_user_key()
    if key is None:
        raise MissingUserKeyError(MISSING_USER_KEY_MESSAGE)
    return key
