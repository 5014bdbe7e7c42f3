# Ensure '<repo>/backend' is on sys.path so 'import tanker.*' and 'import tests.*'
# work even when pytest is started from the repository root.
from pathlib import Path
import sys

_BACKEND_DIR = Path(__file__).resolve().parent  # <repo>/backend
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

# Operator scripts talk to real stores and are not test modules
collect_ignore_glob = [
    "scripts/*.py",
]
