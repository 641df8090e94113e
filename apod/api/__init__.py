"""
API integration for the APOD cache.

This package handles communication with the NASA APOD API,
including error translation and response parsing.
"""

from .nasa_api_manager import (
    AioHttpClient,
    APODService,
    ApodAPIException,
    ApodAuthenticationException,
    ApodDataException,
    ApodNetworkException,
    ApodRateLimitException,
    HTTPClient,
)

__all__ = [
    "AioHttpClient",
    "APODService",
    "ApodAPIException",
    "ApodAuthenticationException",
    "ApodDataException",
    "ApodNetworkException",
    "ApodRateLimitException",
    "HTTPClient",
]
