"""Allow running as ``python -m linkhealth``."""

from . import main

main()
