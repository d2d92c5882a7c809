import sys

from functemplate.cli import main

sys.exit(main())
