import os
import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Settings are read at import time, so these must be set before app modules load.
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")
os.environ.setdefault("LLM_ENABLED", "0")
os.environ.setdefault("ADMIN_USERNAME", "admin")
os.environ.setdefault("ADMIN_PASSWORD", "correct-horse-battery")
os.environ.setdefault("ADMIN_TOKEN_SECRET", "test-token-secret")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="resume-screener-tests-"))
