import sys

from aemeye.cli import main

if __name__ == '__main__':
    # Same as the installed `aem-eye` console script; handy from a checkout.
    sys.exit(main())
