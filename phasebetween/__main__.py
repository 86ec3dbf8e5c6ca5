"""Allow running the exporter with ``python -m phasebetween``."""

import sys

from phasebetween.cli import main

sys.exit(main())
