import os
import sys
from pathlib import Path

# Set test environment variables
os.environ.update({"RTMS_HANDSHAKE_TIMEOUT_SECONDS": "0"})

# Ensure the project root is on sys.path so `app` and `tests` packages resolve
PROJECT_ROOT = Path(__file__).resolve().parents[1]
root_dir_str = str(PROJECT_ROOT)
if root_dir_str not in sys.path:
    sys.path.insert(0, root_dir_str)

# Import RTMS fakes so they are available to all tests
from tests.fixtures.rtms_fixtures import *  # noqa: E402, F403
