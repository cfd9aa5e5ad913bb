#!/usr/bin/env python3
"""
Trade Settlement Service - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
One executable for every settlement process.

- Compatible with PM2 process management
- The API and the scheduler can run as separate processes or
  together (api --with-scheduler)
- A cron job may call `sweep` instead of running `scheduler`

============================================================
USAGE
============================================================
Direct execution:
    python app.py api --port 8000
    python app.py scheduler
    python app.py sweep
    python app.py reconcile
    python app.py init-db

With PM2:
    pm2 start app.py --interpreter python --name settlement-api -- api
    pm2 start app.py --interpreter python --name settlement-scheduler -- scheduler

============================================================
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from settlement.cli import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())
