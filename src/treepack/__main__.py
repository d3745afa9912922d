"""Package entry point.

Enables running the archiver with:

    python -m treepack create BASE DEST
"""

from __future__ import annotations

import sys

from treepack.cli import main

if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
