"""
Where the catalog lives unless told otherwise.

The catalog is per user, not per project, so it goes to the platform's
user data directory.
"""

from __future__ import annotations

import pathlib

import platformdirs

USER_DATA_DIR = pathlib.Path(platformdirs.user_data_dir("scpanel", "scpanel"))
CATALOG_FILE = USER_DATA_DIR / "catalog.yaml"
