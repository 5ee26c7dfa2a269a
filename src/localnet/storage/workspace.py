import glob
import logging
import os
import shutil

from localnet.errors import CleanupError

log = logging.getLogger(__name__)

# Database and wallet files written by nodes running in test mode.
DEFAULT_CLEANUP_PATTERNS = (
    'src/db/db/test.*',
    'src/wallet/wallet/test.*',
)


class WorkspaceCleaner:
    """
    Removes persisted node state left behind by a previous run.
    Safe to run repeatedly; fails loudly if anything matching survives.
    """

    def __init__(self, root='.', patterns=DEFAULT_CLEANUP_PATTERNS):
        self.root = root
        self.patterns = tuple(patterns)

    def matches(self):
        found = []
        for pattern in self.patterns:
            found.extend(sorted(glob.glob(os.path.join(self.root, pattern))))
        return found

    def _remove(self, path):
        try:
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
            else:
                os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CleanupError(path, e) from e
        return True

    def clean(self):
        """Delete every matching file or directory. Returns the removed paths."""
        removed = [path for path in self.matches() if self._remove(path)]

        leftover = self.matches()
        if leftover:
            raise CleanupError(leftover[0], f"{len(leftover)} stale path(s) still present")

        if removed:
            log.info(f"Removed {len(removed)} stale state path(s)")
            for path in removed:
                log.debug(f"  {path}")
        else:
            log.info("No stale state to remove")
        return removed
