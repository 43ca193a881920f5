import sys
import argparse
import logging
from pathlib import Path

from .registry_updater import RegistryUpdater
from .registry_verifier import RegistryVerifier


def _print_results(results, verbose: bool) -> int:
    """Print failures, and successes when verbose. Returns the number of failures."""
    failures = 0
    for result in results:
        if not result.ok:
            failures += 1
            print(result.message)
        elif verbose:
            print(result.message)
    return failures


def main(argv=None):
    """Main entry point for the port registry CLI."""
    # Create the parser
    parser = argparse.ArgumentParser(description='Port version registry tools')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Add version command
    add_version_parser = subparsers.add_parser('add-version', help='Record the current version of a port')
    add_version_parser.add_argument('port_name', nargs='?', help='Port name')
    add_version_parser.add_argument('--all', action='store_true', help='Process versions for all ports')
    add_version_parser.add_argument('--overwrite-version', action='store_true',
                                    help='Overwrite `git-tree` of an existing version')
    add_version_parser.add_argument('--skip-formatting-check', action='store_true',
                                    help='Skip the formatting check of vcpkg.json files')
    add_version_parser.add_argument('--verbose', action='store_true',
                                    help='Print success messages instead of just errors')
    add_version_parser.add_argument('--keep-going', action='store_true',
                                    help='Report failures and continue with the remaining ports (implied by --all)')

    # Verify versions command
    verify_parser = subparsers.add_parser('verify-versions',
                                          help='Verify ports against their version files and the baseline')
    verify_parser.add_argument('port_names', nargs='*', help='Ports to verify (default: all ports)')
    verify_parser.add_argument('--verbose', action='store_true',
                               help='Print result for each port instead of just errors')
    verify_parser.add_argument('--verify-git-trees', action='store_true',
                               help='Verify that each git tree object matches its declared version (this is very slow)')
    verify_parser.add_argument('--exclude', default='', help='Comma-separated list of ports to skip')
    verify_parser.add_argument('--fail-fast', action='store_true', help='Stop at the first failing port')

    # Common args
    parser.add_argument('--registry-root', default='.',
                        help='Registry root containing ports/ and versions/ (default: current directory)')
    parser.add_argument('--log-level',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='WARNING',
                        help='Set the logging level')

    # Parse arguments
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Process commands
    try:
        registry_root = Path(args.registry_root)

        if args.command == 'add-version':
            updater = RegistryUpdater(registry_root)
            if args.all:
                port_names = updater.core.paths.list_ports()
            elif args.port_name:
                port_names = [args.port_name]
            else:
                print("add-version requires a port name or --all")
                sys.exit(1)

            keep_going = args.keep_going or args.all
            results = updater.add_versions(port_names,
                                           overwrite=args.overwrite_version,
                                           skip_formatting_check=args.skip_formatting_check,
                                           keep_going=keep_going)
            failures = _print_results(results, args.verbose)
            if failures and not keep_going:
                sys.exit(1)
            sys.exit(0)

        elif args.command == 'verify-versions':
            verifier = RegistryVerifier(registry_root)
            exclude = [name.strip() for name in args.exclude.split(',') if name.strip()]
            results = verifier.verify_ports(args.port_names or None,
                                            exclude=exclude,
                                            verify_content=args.verify_git_trees,
                                            keep_going=not args.fail_fast)
            failures = _print_results(results, args.verbose)
            if failures:
                print(f"{failures} of {len(results)} port(s) failed version verification")
                sys.exit(1)
            if args.verbose:
                print(f"All {len(results)} port(s) passed version verification")
            sys.exit(0)

    except Exception as e:
        logging.error(f"Command failed: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
