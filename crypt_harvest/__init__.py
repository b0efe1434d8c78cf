"""Share vault and single-strategy yield harvesting engine."""

from typing import NoReturn

__version__ = "0.1.0"


def _entry_point() -> NoReturn:
    """Entry point for the crypt-harvest script."""
    import sys

    from crypt_harvest.cli import main

    raise SystemExit(main(sys.argv[1:]))


def _clear_state_entry_point() -> NoReturn:
    """Entry point for clearing saved ledgers."""
    from crypt_harvest.store import clear_state

    clear_state()
    raise SystemExit(0)
