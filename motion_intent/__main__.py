import sys

from motion_intent.cli import main

sys.exit(main())
