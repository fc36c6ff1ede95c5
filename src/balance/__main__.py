"""Allow `python -m balance` to launch the REPL."""

import sys

from balance.main import main

sys.exit(main())
