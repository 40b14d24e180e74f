"""Allow ``python -m pharmastock``."""

import sys

from pharmastock.cli import main

sys.exit(main())
