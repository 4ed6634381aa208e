"""Package version. `QPC_VERSION` in the environment overrides the release string."""

from __future__ import annotations

import os

RELEASE = "0.1.0"

__version__ = os.getenv("QPC_VERSION") or RELEASE

__all__ = ["__version__", "RELEASE"]
