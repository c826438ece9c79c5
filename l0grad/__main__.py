import sys

from l0grad.cli import main

sys.exit(main())
