"""Utility functions for rdb-ontology."""

import logging
import sys
from typing import Any, Optional, TextIO
from urllib.parse import urlparse

# Keys whose values never reach a log line
SENSITIVE_KEYS = {
    'password', 'passwd', 'pwd', 'secret', 'api_key', 'apikey',
    'token', 'auth', 'authorization', 'credentials', 'private_key'
}


def setup_logging(log_level: str = "WARNING", structured: bool = False,
                  stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Setup logging configuration for the application.

    Args:
        log_level: The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Whether to use structured logging format (JSON)
        stream: Where log records go; standard error by default, standard
            output being reserved for dumped graphs

    Returns:
        Logger instance for the root logger
    """
    numeric_level = getattr(logging, log_level.upper(), logging.WARNING)

    if structured:
        formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove any existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    return root_logger


def sanitize_for_logging(data: Any) -> Any:
    """
    Sanitize sensitive data for logging by redacting passwords, secrets, and API keys.

    Args:
        data: Data structure (dict, list, or primitive) to sanitize

    Returns:
        Sanitized copy of the data with sensitive fields redacted
    """
    if isinstance(data, dict):
        sanitized = {}
        for key, value in data.items():
            if any(sensitive in str(key).lower() for sensitive in SENSITIVE_KEYS):
                sanitized[key] = '***REDACTED***' if value is not None else None
            elif isinstance(value, (dict, list)):
                sanitized[key] = sanitize_for_logging(value)
            else:
                sanitized[key] = value
        return sanitized
    elif isinstance(data, list):
        return [sanitize_for_logging(item) for item in data]
    else:
        return data


def validate_uri(uri: str) -> bool:
    """
    Validate that a string is an absolute URI usable as a namespace.

    Args:
        uri: URI string to validate

    Returns:
        True if the URI has a scheme and something after it, False otherwise
    """
    if not uri:
        return False

    try:
        parsed = urlparse(uri)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)
