"""Garden rig controller that stays alive"""

import sys

from gardenrig.cli import main

if __name__ == "__main__":
    sys.exit(main())
