"""Allow ``python -m lock_verify``."""

import sys

from lock_verify.main import main

if __name__ == "__main__":
    sys.exit(main())
