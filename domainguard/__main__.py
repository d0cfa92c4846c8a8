"""Allow running as `python -m domainguard`."""

from domainguard.cli import main

main()
