import sys

from can2vss.cli import main

sys.exit(main())
