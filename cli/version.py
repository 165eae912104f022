"""
Version information for the invoice document parser.

The version reported by the CLI is the base version, suffixed with the short
git commit hash when running from a git checkout.
"""

import subprocess
import sys
from pathlib import Path
from typing import Optional


# Base version - this is the only place you need to update the version number
BASE_VERSION = "1.0.0"


def get_git_commit_hash() -> Optional[str]:
    """
    Get the short hash of the current git commit.

    Returns:
        Git commit hash string or None if not available
    """
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=Path(__file__).parent.parent,
            capture_output=True,
            text=True,
            timeout=5
        )
    except (subprocess.TimeoutExpired, subprocess.SubprocessError, OSError):
        return None

    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def get_version(include_commit: bool = True) -> str:
    """Version string in the form MAJOR.MINOR.PATCH[+hash]."""
    commit = get_git_commit_hash() if include_commit else None
    return f"{BASE_VERSION}+{commit}" if commit else BASE_VERSION


def get_version_info() -> dict:
    """Version details for the ``version --detailed`` command."""
    from importlib.metadata import version

    return {
        "version": get_version(),
        "base_version": BASE_VERSION,
        "commit_hash": get_git_commit_hash(),
        "python_version": sys.version.split()[0],
        "pdfplumber_version": version("pdfplumber"),
        "click_version": version("click"),
    }


__version__ = BASE_VERSION
