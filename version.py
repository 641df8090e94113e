"""
Version information for the APOD cache library.

Centralized version management for the package, the command-line entry
point and the HTTP User-Agent sent to the NASA API.
"""

# Core application information
__version__ = "1.2.0"
__app_name__ = "ApodCache"
__app_display_name__ = "APOD Cache - Astronomy Picture of the Day offline library"
__description__ = (
    "Fetches NASA's Astronomy Picture of the Day, caches it locally "
    "and keeps a history of viewed entries"
)

# Feature information
__features__ = [
    "Cache-aside lookup of APOD metadata by date",
    "SQLite persistence with per-entry view statistics",
    "Local image cache with remote URL fallback",
    "High-resolution image export to a media directory",
]

# API information
__apod_api_provider__ = "NASA Open APIs"
__apod_api_url__ = "https://api.nasa.gov/planetary/apod"


def get_version_string() -> str:
    """Get formatted version string."""
    return f"{__app_name__} v{__version__}"


def get_user_agent() -> str:
    """Get the User-Agent header value for outgoing requests."""
    return f"{__app_name__}/{__version__}"


def get_full_version_info() -> str:
    """Get comprehensive version information."""
    features = "\n".join(f"  - {feature}" for feature in __features__)
    return f"""
{__app_display_name__}
Version: {__version__}
Data Provider: {__apod_api_provider__} ({__apod_api_url__})
Features:
{features}
"""
