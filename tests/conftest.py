from __future__ import annotations

import os
import tempfile
from pathlib import Path

# must run before carelog.config is imported by any test module
_TEST_DB = Path(tempfile.mkdtemp(prefix="carelog-tests-")) / "carelog.db"
os.environ["CARELOG_DATABASE_PATH"] = str(_TEST_DB)
os.environ["CARELOG_REFERENCE_TIMEZONE"] = "UTC"
os.environ.pop("CARELOG_DISPLAY_TIMEZONE", None)
os.environ.pop("CARELOG_CONFIG", None)
