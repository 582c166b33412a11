"""
Entry point for `workshop-emu` and `python -m workshop_emu`.

Commands report their expected failures themselves. Errors that escape a
command are rendered here as a panel with suggestions and exit with status 1.
"""

import logging
import sys

from rich.console import Console

from workshop_emu.cli import app as cli_app
from workshop_emu.cli.formatters import format_error_with_suggestions
from workshop_emu.exceptions import ConfigurationError, WorkshopEmuError

log = logging.getLogger("workshop_emu")


def main() -> None:
    """Runs the CLI."""
    errors = Console(stderr=True)

    try:
        cli_app.app()
    except ConfigurationError as e:
        context = {"config_file": str(cli_app.CONFIG_FILE)}
        errors.print(format_error_with_suggestions(e, context))
        sys.exit(1)
    except WorkshopEmuError as e:
        errors.print(format_error_with_suggestions(e))
        sys.exit(1)
    except Exception as e:
        log.debug("Unhandled error:", exc_info=True)
        errors.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        sys.exit(1)


if __name__ == "__main__":
    main()
