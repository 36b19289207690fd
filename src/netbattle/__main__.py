from pathlib import Path
import logging
import os
import sys

from dotenv import load_dotenv

# Ensure the src directory is on sys.path when running as a script
_SRC_DIR = Path(__file__).resolve().parents[1]
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from netbattle.presentation.cli import main as cli_main


def _print_help_surface() -> None:
    print("\nHelp:")
    print("- Run a battle: python -m netbattle simulate [--seed N] [--entity NAME] [--duel]")
    print("- Startup issues: verify NETBATTLE_DATABASE_URL or unset it to use in-memory mode.")
    print("- Catalog issues: unset NETBATTLE_CHIP_TSV_URL / NETBATTLE_VIRUS_TSV_URL to use the seed catalog.")


def _configure_logging() -> None:
    level_name = (os.getenv("NETBATTLE_LOG_LEVEL") or "WARNING").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv=None) -> int:
    load_dotenv()
    _configure_logging()
    try:
        return cli_main(argv)
    except KeyboardInterrupt:
        print("\nSession ended.")
        return 130
    except Exception as exc:
        logging.getLogger("netbattle").debug("Unhandled CLI failure", exc_info=True)
        print("An unexpected error occurred. The battle closed safely.")
        print(f"Reason: {exc}")
        _print_help_surface()
        return 1


if __name__ == "__main__":
    sys.exit(main())
