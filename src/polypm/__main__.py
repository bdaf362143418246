"""Allow `python -m polypm`."""

import sys

from .cli import main

sys.exit(main())
