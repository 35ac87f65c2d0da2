import sys

from fuzzrun.main import main

sys.exit(main())
