import argparse
import os
from functools import lru_cache
from pathlib import Path


@lru_cache
def get_cli_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sockhub",
        description=(
            "Run a sockhub endpoint.\n\n"
            "serve   → accept clients and relay every message to all of them.\n"
            "connect → connect to a server, print received messages and send\n"
            "          each line read from stdin."
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        "mode",
        choices=["serve", "connect"],
        help="Endpoint to run."
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Path to a sockhub configuration file"
    )

    parser.add_argument(
        "-l", "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=(
            "Logging verbosity.\n"
            "Choose among: DEBUG, INFO, WARNING, ERROR, CRITICAL.\n\n"
            "DEBUG    → every connection, disconnection and dropped payload.\n"
            "INFO     → registrations and accept batches (default).\n"
            "WARNING  → only warnings and errors.\n"
            "ERROR    → only errors.\n"
            "CRITICAL → only critical failures.\n\n"
            "Example:\n"
            "  --log-level DEBUG"
        ),
    )

    return parser.parse_args()


@lru_cache
def get_configfile() -> Path | None:
    args = get_cli_args()

    # Priority: CLI > ENV > default file in current working directory
    raw = args.config or os.getenv("SOCKHUBCONFIG")

    if raw is None:
        file = Path.cwd() / "sockhub.yaml"
        # The default file is optional, settings then come from defaults and env
        return file if file.is_file() else None

    file = Path(raw)
    if not file.is_file():
        raise SystemExit(
            f"[config] Configuration file not found: '{file}'.\n"
            "  - Use --config <file.yaml>\n"
            "  - Or set the SOCKHUBCONFIG environment variable\n"
            "  - Or place a 'sockhub.yaml' file in the current working directory."
        )

    return file
