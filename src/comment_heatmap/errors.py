"""Custom exception types for the comment heatmap."""


class HeatmapError(Exception):
    """Base exception for all recoverable heatmap errors."""


class ConfigurationError(HeatmapError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(HeatmapError):
    """Raised when Confluence API credentials are unavailable."""


class ApiError(HeatmapError):
    """Raised when a Confluence API request fails or returns an unexpected response."""


class DataValidationError(HeatmapError):
    """Raised when API payloads do not carry the fields the heatmap needs."""


class PageLoadError(ApiError):
    """Raised when a page or its inline comments cannot be loaded."""
