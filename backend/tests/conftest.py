import os
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

# the module-level stores open their sqlite file on import
os.environ.setdefault(
    "WHISKARZ_DB_PATH",
    os.path.join(tempfile.mkdtemp(prefix="whiskarz-tests-"), "whiskarz.sqlite3"),
)
os.environ.pop("FIREBASE_CREDENTIALS_PATH", None)
