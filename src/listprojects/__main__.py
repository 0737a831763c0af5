import sys

from listprojects.cli import main

sys.exit(main())
