"""Allow ``python -m apiviz``."""

from __future__ import annotations

import sys

from apiviz.diagrams.pipeline import main

if __name__ == "__main__":
    sys.exit(main())
