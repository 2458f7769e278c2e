"""Allow ``python -m crossposter``."""

import sys

from .cli import main


sys.exit(main())
