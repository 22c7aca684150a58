"""
Shared setup for maintenance scripts.

Lets a script be run directly (``python scripts/migrate_legacy_votes.py``)
from a source checkout by putting the backend root on the import path.

Usage:
    import _common  # noqa: F401
"""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).parent.parent
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
