import sys

from winadmin.cli import main

sys.exit(main())
