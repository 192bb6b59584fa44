import sys

from workload_identity.cli import main

sys.exit(main())
