"""Allow ``python -m worktree_lens``."""

import sys

from worktree_lens.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
