"""Allow ``python -m podwatcher``."""

import sys

from podwatcher.cli import main


sys.exit(main())
