"""Simple runtime configuration for the taskhub app.

Control flags are read from environment variables to allow toggling in
development or production without code changes.
"""
import os


def _trueish(v: str | None) -> bool:
    if not v:
        return False
    return v.lower() in ('1', 'true', 'yes', 'on')


# When true, the app is considered to be running in development mode.
# Internal error messages are attached to 500 responses and templates show a
# dev banner. Set DEV_MODE=1 in the environment to enable.
DEV_MODE = _trueish(os.getenv('DEV_MODE', '0'))

# Sessions expire a fixed number of hours after login (absolute, not sliding).
try:
    SESSION_TTL_HOURS = int(os.getenv('SESSION_TTL_HOURS', '24'))
except ValueError:
    SESSION_TTL_HOURS = 24

# Mark session cookies Secure. Leave off for plain-HTTP dev/test servers.
COOKIE_SECURE = _trueish(os.getenv('COOKIE_SECURE', '0'))

# Category assigned to tasks created without one.
DEFAULT_CATEGORY = os.getenv('DEFAULT_CATEGORY', 'Task')

# Categories offered as tabs on the task page. Tasks may still carry any label.
CATEGORIES = [c.strip() for c in os.getenv('CATEGORIES', 'Task,Thesis,Work,Car').split(',') if c.strip()]

APP_NAME = os.getenv('APP_NAME', 'taskhub')
APP_VERSION = '1.0.0'

# Optional local overrides: define variables in taskhub/local_config.py to
# override the defaults above without changing versioned config.
try:
    from .local_config import *  # type: ignore  # noqa: F401,F403
except ImportError:
    # No local overrides present; proceed with defaults.
    pass
