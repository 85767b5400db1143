"""CLI entry points for adaptive-encoder package."""

import sys
from pathlib import Path


def main():
    """Entry point for adaptive-encode command."""
    from adaptive_encoder.core.main import main as encode_main
    sys.exit(encode_main())


def select_main():
    """Entry point for adaptive-encode-select command."""
    from adaptive_encoder.core.main import select_main as run_select
    sys.exit(run_select())


if __name__ == "__main__":
    # If called directly, determine which command to run based on script name
    script_name = Path(sys.argv[0]).stem
    if "select" in script_name:
        select_main()
    else:
        main()
