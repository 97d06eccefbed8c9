"""Allow ``python -m embedctl``."""

from __future__ import annotations

import sys

from embedctl.cli import main

if __name__ == "__main__":
    sys.exit(main())
