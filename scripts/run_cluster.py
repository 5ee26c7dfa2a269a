import os
import sys

root = os.path.join(os.path.dirname(__file__), '..')
sys.path.insert(0, os.path.join(root, 'src'))

from localnet.main import main

if __name__ == '__main__':
    sys.exit(main())
