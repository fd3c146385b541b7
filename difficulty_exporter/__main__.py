import sys

from .exporter import main

if __name__ == "__main__":
    sys.exit(main())
