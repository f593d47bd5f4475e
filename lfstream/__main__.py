import sys

from lfstream.cli import main

sys.exit(main())
