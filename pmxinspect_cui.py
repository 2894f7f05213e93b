import argparse
import logging
import sys
from typing import List, Optional

import pmxinspect

VERSION = "1.0.0"  # Version of the PMX Inspect Tool


def main(argv: Optional[List[str]] = None) -> int:
    # Usage: python pmxinspect_cui.py <model.pmx> [<model2.pmx> ...]
    # Optional arguments:
    # --all-violations : Report every dangling reference instead of stopping at the first one.
    # --verbose / --quiet : More or less log output.

    parser = argparse.ArgumentParser(description="Parse PMX models and report their structure.")
    parser.add_argument("paths", type=str, nargs='+',
                        help="PMX file paths to inspect.")

    parser.add_argument("--all-violations", "-a", action='store_true',
                        help="Collect every dangling reference instead of stopping at the first one.")
    parser.add_argument("--verbose", "-v", action='store_true',
                        help="Show debug log messages.")
    parser.add_argument("--quiet", "-q", action='store_true',
                        help="Only show warnings and errors.")

    parser.add_argument("--version", action='version', version=f'PMX Inspect Tool {VERSION}',)

    args = parser.parse_args(argv)

    if args.verbose and args.quiet:
        print("Error: --verbose and --quiet cannot be used together.")
        return 2

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.WARNING)

    ok, msg = pmxinspect.inspect_pmx_files(args.paths, all_violations=args.all_violations, report=print)
    if not ok:
        print(f"Error: {msg}")
        return 1

    print(msg)
    return 0


if __name__ == "__main__":
    sys.exit(main())

# End of pmxinspect_cui.py
