import sys

from quasi.quasi_cli import main

sys.exit(main())
