from pathlib import Path

# Default locations and metadata shared across modules
DEFAULT_TREE_FILE = Path("tree.json")
SCHEMA_VERSION = 1
SNAPSHOT_VERSION = 1

# Query defaults
DEFAULT_ORDER = "visits"
DEFAULT_TOP = 20

# TimeControl buckets in estimated seconds (base + 40 * increment)
BULLET_LIMIT = 180
BLITZ_LIMIT = 600
RAPID_LIMIT = 3600
DAILY_LIMIT = 86400
TIME_CONTROLS = ("bullet", "blitz", "rapid", "classical", "daily")
