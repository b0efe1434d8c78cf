"""Entry point guard: non-reentrancy plus all-or-nothing execution."""

import functools
import logging

from crypt_harvest.errors import ReentrancyDetected

logger = logging.getLogger(__name__)


def entrypoint(func):
    """Wrap a public mutating contract method.

    - Re-entering any entry point of the same contract while one is running
      raises :py:class:`ReentrancyDetected`.
    - The outermost entry point of a call tree snapshots the chain. If any
      exception escapes, every contract is restored before it propagates,
      so no partial effects are ever observable.
    """

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if self._entered:
            raise ReentrancyDetected(f"{type(self).__name__}.{func.__name__}() re-entered")

        chain = self.chain
        outermost = chain.depth == 0
        snapshot_id = chain.snapshot() if outermost else None
        self._entered = True
        chain.depth += 1
        try:
            result = func(self, *args, **kwargs)
        except Exception as ex:
            if outermost:
                logger.debug("Reverting %s.%s(): %r", type(self).__name__, func.__name__, ex)
                chain.revert(snapshot_id)
            raise
        finally:
            self._entered = False
            chain.depth -= 1

        if outermost:
            chain.discard(snapshot_id)
        return result

    return wrapper
