"""
Version information for the transport process engine.

This module provides version information that can be imported by other modules.
"""

__version__ = "0.1.0"
__version_info__ = (0, 1, 0)

# Release information
RELEASE_STATUS = "alpha"  # alpha, beta, rc, stable

# Compatibility
MIN_PYTHON_VERSION = (3, 8)


def get_version() -> str:
    """
    Get the version string.

    Returns:
        Version string (e.g., "0.1.0")
    """
    return __version__


def get_version_info() -> tuple:
    return __version_info__


def check_python_version() -> bool:
    """
    Check if the current Python version is compatible.

    Returns:
        True if compatible, False otherwise
    """
    import sys

    return sys.version_info[:2] >= MIN_PYTHON_VERSION
