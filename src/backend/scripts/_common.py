"""
Path setup for the operator scripts in this directory.

Scripts are run directly (``python scripts/security_report.py``), so the
backend root has to be importable before ``core``, ``db`` or ``services``
are imported:

    import _common  # noqa: F401
"""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parent.parent
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
