import sys

from pyramidreg.cli import main

sys.exit(main())
