"""Allow `python -m browser_index`."""

import sys

from browser_index.cli import main

if __name__ == "__main__":
    sys.exit(main())
