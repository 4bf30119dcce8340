"""autovault package root.

Share-based auto-compounding vault accounting engine.

- Start from :py:class:`autovault.vault.AutoCompoundingVault`

- Collaborators are :py:class:`autovault.token.Token` and :py:class:`autovault.yield_source.YieldSource`
"""

import sys


#: Minimum required Python version to run this package
MIN_PYTHON_VERSION = (3, 10)


def _check_python_version():
    """Try early abort if the Python version is too old."""

    # Use Python tuple comparison for version numbers
    if sys.version_info < MIN_PYTHON_VERSION:
        raise RuntimeError(f"autovault needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]} or later")


_check_python_version()
