#!/usr/bin/env python3
"""
================================================================================
CLI - Command Line Interface
================================================================================

Command-line access to the importers and the cost-basis engine:
    - import   Parse an export, print problems, write CAP_GAINS.csv
               (plus HOLDINGS_SNAPSHOT.csv for crypto sources)
    - detect   Show which source a file is recognised as
    - headers  List header cells with indices and a suggested mapping
    - sources  List supported sources

Exit Codes:
    0   - success (warnings and row errors still print)
    1   - fatal import error, bad arguments or unexpected failure
    130 - cancelled with Ctrl+C

Usage:
    gains-ledger [command] [options]
    python -m gains_ledger.cli --help

================================================================================
"""

import sys
import json
import argparse
from pathlib import Path
from typing import Dict, List, Optional

from gains_ledger.core.models import ColumnMapping, CostBasisMethod, CryptoColumnMapping, DateFormat
from gains_ledger.core.reports import calculate_crypto_income, export_holdings, export_reportables, summarize_reportables
from gains_ledger.processors.dispatcher import (
    SourceFormat,
    detect_source,
    get_headers,
    get_source_name,
    import_crypto,
    is_crypto_source,
    parse_brokerage_csv,
    resolve_source,
    suggest_column_mapping,
    suggest_crypto_column_mapping,
    supported_sources,
)
from gains_ledger.utils.config import load_config
from gains_ledger.utils.constants import CAP_GAINS_FILENAME, DATE_FORMATS, HOLDINGS_FILENAME
from gains_ledger.utils.logger import get_run_context, set_run_context


class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'
    UNDERLINE = '\033[4m'


def print_header(text):
    """Print formatted header"""
    print(f"\n{Colors.BOLD}{Colors.BLUE}{'=' * 70}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.CYAN}{text:^70}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.BLUE}{'=' * 70}{Colors.ENDC}\n")


def print_success(text):
    """Print success message"""
    print(f"{Colors.GREEN}✓{Colors.ENDC} {text}")


def print_error(text):
    """Print error message"""
    print(f"{Colors.RED}✗{Colors.ENDC} {text}")


def print_warning(text):
    """Print warning message"""
    print(f"{Colors.YELLOW}⚠{Colors.ENDC} {text}")


def print_info(text):
    """Print info message"""
    print(f"{Colors.CYAN}ℹ{Colors.ENDC} {text}")


def _require_file(path: Path, label: str) -> Optional[Path]:
    """Validate a file exists and return it; emit friendly error otherwise."""
    if path.is_file():
        return path
    print_error(f"{label} not found at {path}")
    return None


def _read_content(path_text: str) -> Optional[str]:
    path = _require_file(Path(path_text), 'Input file')
    if path is None:
        return None
    return path.read_text(encoding='utf-8-sig')


def _load_cli_config(args) -> dict:
    config_path = getattr(args, 'config', None)
    return load_config(Path(config_path) if config_path else None)


def _load_json(text: Optional[str], label: str):
    """
    JSON object from inline text or a .json file path; None when ``text`` is empty.

    Raises:
        ValueError: malformed JSON or a non-object payload
    """
    if not text:
        return None
    candidate = Path(text)
    raw = candidate.read_text(encoding='utf-8') if candidate.suffix == '.json' and candidate.is_file() else text
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"{label} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{label} must be a JSON object")
    return data


def _load_mapping(text: Optional[str], crypto: bool):
    """Column mapping (field -> column index); unknown field names raise ValueError."""
    data = _load_json(text, 'Mapping')
    if data is None:
        return None
    return CryptoColumnMapping.from_dict(data) if crypto else ColumnMapping.from_dict(data)


def _load_lot_selections(text: Optional[str]) -> Optional[Dict[str, List[str]]]:
    """SPEC_ID lot order: disposal transaction id -> origin ids of the lots to use."""
    data = _load_json(text, 'Lot selection')
    if data is None:
        return None
    selections = {}
    for disposal_id, lot_ids in data.items():
        if not isinstance(lot_ids, list) or not all(isinstance(i, str) for i in lot_ids):
            raise ValueError(f"Lot selection for {disposal_id} must be a list of transaction ids")
        selections[str(disposal_id)] = lot_ids
    return selections


def _report_problems(result, limit: int = 25):
    for error in result.errors[:limit]:
        print_error(str(error))
    if len(result.errors) > limit:
        print_error(f"... {len(result.errors) - limit} more errors")
    for warning in result.warnings[:limit]:
        print_warning(warning)
    if len(result.warnings) > limit:
        print_warning(f"... {len(result.warnings) - limit} more warnings")


def _print_summary(reportables):
    for category, totals in summarize_reportables(reportables).items():
        print(f"  {Colors.BOLD}Box {category}{Colors.ENDC}: {totals['count']} rows, "
              f"proceeds ${totals['proceeds']:,.2f}, basis ${totals['cost_basis']:,.2f}, "
              f"gain/loss ${totals['gain_loss']:,.2f}")


# ==========================================
# COMMANDS
# ==========================================

def cmd_import(args):
    """Parse an export and write the reports"""
    content = _read_content(args.file)
    if content is None:
        return False

    config = _load_cli_config(args)
    try:
        method = CostBasisMethod.from_value(args.method) if args.method else None
        date_format = DateFormat.from_value(args.date_format) if args.date_format else None
        crypto_mapping = _load_mapping(args.mapping, crypto=True) if args.crypto else None
        column_mapping = None if args.crypto else _load_mapping(args.mapping, crypto=False)
        lot_selections = _load_lot_selections(args.lots)
        source = resolve_source(content, args.source, crypto_mapping)
    except (ValueError, OSError) as e:
        print_error(str(e))
        return False

    if args.crypto and not is_crypto_source(source):
        source = SourceFormat.GENERIC_CRYPTO

    output_dir = Path(args.output or config.get('output', {}).get('directory', 'outputs'))

    print_header(f"IMPORT: {Path(args.file).name}")
    print_info(f"Source: {get_source_name(source)}")

    ledger = None
    transactions = []
    if is_crypto_source(source):
        run = import_crypto(content, source=source, crypto_mapping=crypto_mapping, config=config,
                            method=method, date_format=date_format, lot_selections=lot_selections)
        result, ledger, transactions = run.result, run.ledger, run.transactions
    else:
        result = parse_brokerage_csv(content, source=source, column_mapping=column_mapping, config=config,
                                     method=method, date_format=date_format)

    _report_problems(result)

    if not result.ok and not result.transactions:
        print_error("Import failed; no rows were written")
        return False

    cap_gains = export_reportables(result.transactions, output_dir / CAP_GAINS_FILENAME)
    print_success(f"{len(result.transactions)} reportable rows written to {cap_gains}")
    _print_summary(result.transactions)

    if ledger is not None:
        holdings = export_holdings(ledger, output_dir / HOLDINGS_FILENAME)
        open_lots = sum(1 for _ in ledger.all_lots())
        print_success(f"{open_lots} open lots written to {holdings}")
        income = calculate_crypto_income(transactions)
        if income.total_income > 0:
            print_info(f"Ordinary income to report separately: ${income.total_income:,.2f} "
                       f"(staking ${income.staking_rewards:,.2f}, mining ${income.mining_income:,.2f}, "
                       f"airdrops ${income.airdrop_value:,.2f}, other ${income.other_income:,.2f})")
    return True


def cmd_detect(args):
    """Print the detected source"""
    content = _read_content(args.file)
    if content is None:
        return False
    source = detect_source(content)
    if source is None:
        print_warning("No known source detected; import with --mapping (generic parser)")
        return False
    print_success(f"{get_source_name(source)} ({source.value})")
    return True


def cmd_headers(args):
    """Print header cells with indices and a suggested mapping"""
    content = _read_content(args.file)
    if content is None:
        return False
    headers = get_headers(content)
    if not headers:
        print_error("File has no header row")
        return False

    print_header("COLUMNS")
    for index, name in enumerate(headers):
        print(f"  {index:>3}  {name}")

    suggestion = suggest_crypto_column_mapping(headers) if args.crypto else suggest_column_mapping(headers)
    mapping = {key: value for key, value in vars(suggestion).items() if value is not None}
    print()
    print_info("Suggested --mapping:")
    print(json.dumps(mapping))
    return True


def cmd_sources(args):
    """List supported sources"""
    print_header("SUPPORTED SOURCES")
    for entry in supported_sources():
        print(f"  {Colors.BOLD}{entry['id']:<16}{Colors.ENDC} {entry['name']:<34} {entry['kind']}")
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='gains-ledger',
        description='Gains Ledger - Form 8949 rows from brokerage and exchange exports',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  %(prog)s import schwab_2024.csv                 # Auto-detect and import
  %(prog)s import coinbase.csv --method hifo      # Crypto with HIFO lots
  %(prog)s import kraken.csv --method spec_id --lots lots.json  # Chosen lots per sale
  %(prog)s import export.csv --crypto --mapping '{"timestamp": 0, "transaction_type": 1, "asset": 2, "quantity": 3}'
  %(prog)s detect export.csv                      # Show detected source
  %(prog)s headers export.csv --crypto            # Columns and suggested mapping
  %(prog)s sources                                # List supported sources
        '''
    )
    parser.add_argument('--config', help='Path to config.json (default: configs/config.json)')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    parser_import = subparsers.add_parser('import', help='Import an export and write CAP_GAINS.csv')
    parser_import.add_argument('file', help='CSV export to import')
    parser_import.add_argument('--source', choices=[s.value for s in SourceFormat],
                               help='Skip detection and use this source')
    parser_import.add_argument('--method', choices=[m.value for m in CostBasisMethod],
                               type=str.lower, help='Cost basis method for crypto sources')
    parser_import.add_argument('--date-format', choices=list(DATE_FORMATS),
                               help='Date layout for generic imports')
    parser_import.add_argument('--mapping', help='Column mapping as JSON text or a .json file')
    parser_import.add_argument('--lots', help='Specific-ID lot selections as JSON text or a .json file '
                                    '({"disposal id": ["lot origin id", ...]}); used with --method spec_id')
    parser_import.add_argument('--crypto', action='store_true',
                               help='Treat an undetected file as crypto exchange history')
    parser_import.add_argument('--output', help='Output directory (default: config output.directory)')
    parser_import.set_defaults(func=cmd_import)

    parser_detect = subparsers.add_parser('detect', help='Show the detected source of a file')
    parser_detect.add_argument('file', help='CSV export')
    parser_detect.set_defaults(func=cmd_detect)

    parser_headers = subparsers.add_parser('headers', help='List header columns and a suggested mapping')
    parser_headers.add_argument('file', help='CSV export')
    parser_headers.add_argument('--crypto', action='store_true', help='Suggest a crypto history mapping')
    parser_headers.set_defaults(func=cmd_headers)

    parser_sources = subparsers.add_parser('sources', help='List supported sources')
    parser_sources.set_defaults(func=cmd_sources)

    return parser


def main(argv=None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    # If no command specified, show help
    if not args.command:
        parser.print_help()
        return 0

    if get_run_context() != 'test':
        set_run_context('cli')

    try:
        success = args.func(args)
        return 0 if success else 1
    except KeyboardInterrupt:
        print_info("\nOperation cancelled by user")
        return 130
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
