"""Entry point for `python -m kuberelay`.

Usage:
    python -m kuberelay
    uv run python -m kuberelay
"""

from __future__ import annotations

import asyncio

from kuberelay.app import main

asyncio.run(main())
