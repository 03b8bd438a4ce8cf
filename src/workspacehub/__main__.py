import sys

from workspacehub.main import main

sys.exit(main())
