from __future__ import annotations

import sys
from pathlib import Path

# Lets the scripts run from a checkout without `pip install -e .`.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))
