"""Allow running the package as a module: python -m crypt_harvest"""

import sys

from crypt_harvest.cli import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
