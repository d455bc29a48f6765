"""Allow ``python -m launchpad``."""

from launchpad.interfaces.cli import cli

if __name__ == "__main__":  # pragma: no cover - convenience entry point
    cli()
