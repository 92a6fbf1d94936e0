"""Blood-pressure tracking service.

Records single-arm blood-pressure readings and reports combined and
per-arm averages over daily, weekly, monthly and all-time windows that
follow the user's local calendar.

Modules:
    config: Configuration management using pydantic-settings
    storage: SQLite reading store with retrying async access
    averages: Timeframe resolution, extraction and aggregation
    http_handler: REST API for readings and averages
    bot: Chat commands (/bp, /bpa, /bpsummary, /bptrend)

Example:
    Run the service::

        $ uv run bp-tracker

    Print this week's averages for a user::

        $ uv run bp-averages --user 42 --timeframe weekly
"""

__version__ = "0.1.0"

from .config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
