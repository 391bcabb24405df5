"""Utility for initializing the sales ledger master workbook.

The module doubles as a script (``python -m sales_ledger.setup_excel``) and as
a library used by tests or other tooling. Shared helpers keep the workbook
bootstrap logic consistent regardless of the execution path.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence
import sys

from . import data_manager, log
from .constants import SheetName

DEFAULT_SELLER_NAME = "Direct Sale"

CONFIG_FILE = data_manager.CONFIG_FILE_NAME


@dataclass(frozen=True)
class SetupSettings:
    """Configuration values used during setup."""

    data_file: Path
    default_seller_id: str


def load_settings(config_path: Path) -> SetupSettings:
    """Read ``config.ini`` and produce :class:`SetupSettings`.

    Relative paths inside the config file are resolved against the config
    file's directory.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        KeyError: If a required entry is missing.
    """

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    return SetupSettings(data_file=settings.data_file, default_seller_id=settings.default_seller_id)


def create_master_workbook(
    destination: Path,
    *,
    default_seller_id: str,
    default_seller_name: str = DEFAULT_SELLER_NAME,
    sheet_columns: Mapping[str, Sequence[str]] = data_manager.SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create an empty ledger workbook at ``destination``.

    The workbook holds every sheet with its header row and a single seller
    that direct sales are attributed to. When ``overwrite`` is ``False`` (the
    default) this function raises ``FileExistsError`` if the target already
    exists.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing master workbook: {destination}")

    workbook = data_manager.new_workbook(sheet_columns)
    workbook[SheetName.SELLERS.value].append([default_seller_id, default_seller_name])
    data_manager.save_workbook(workbook, destination)
    log.info("Created master workbook at '%s'", destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook configured in ``config_path``."""

    settings = load_settings(config_path)
    return create_master_workbook(
        settings.data_file,
        default_seller_id=settings.default_seller_id,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialize the sales ledger data file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Sales Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created master workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
