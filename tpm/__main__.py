"""Allow running the CLI with `python -m tpm`."""

import sys

from tpm.main import main


if __name__ == "__main__":
    sys.exit(main())
