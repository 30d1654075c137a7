#!/usr/bin/env python3
"""
Jira Objects - Command Line Interface

Features:
- Read object type schemas, single objects, whole object types and AQL results
- Create and update objects with human readable property names
- Resolve reference attributes by label, optionally creating missing references
- Bulk apply a JSON file of desired objects with progress tracking

Usage:
    jira-objects init                                       # Create the settings file
    jira-objects schema 21                                  # Show attributes of object type 21
    jira-objects list --type-id 21                          # List every object of type 21
    jira-objects query 'objectType = "Servers"'             # Run an AQL query
    jira-objects create 21 --set Label=ZYX --set "Operating System=RHEL 9" --create-references
    jira-objects update 1234 --set Label=XYZ
    jira-objects apply servers.json 21 --create-references  # Create or update in bulk
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import colorama
from colorama import Fore, Style
from tqdm import tqdm

from .config import Config, ConfigurationError, default_config_path, setup_logging
from .jira_assets_client import JiraAssetsClient
from .models import Outcome
from .object_manager import ObjectManager

# Initialize colorama for cross-platform colored output
colorama.init()


class ProgressTracker:
    """Track and display progress for bulk operations."""

    def __init__(self, total_items: int, description: str = "Processing"):
        """Initialize progress tracker."""
        self.total_items = total_items
        self.description = description
        self.current = 0
        self.changed = 0
        self.unchanged = 0
        self.errors = 0
        self.progress_bar = None

        if total_items > 0:
            self.progress_bar = tqdm(
                total=total_items,
                desc=description,
                unit="objects",
                bar_format="{desc}: {percentage:3.0f}%|{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]"
            )

    def update(self, result: Dict[str, Any]):
        """Update progress based on result."""
        self.current += 1

        status = result.get('status')
        if status == 'changed':
            self.changed += 1
        elif status == 'unchanged':
            self.unchanged += 1
        else:
            self.errors += 1

        if self.progress_bar:
            status_text = f"{self.description} (✓{self.changed} ={self.unchanged} ✗{self.errors})"
            self.progress_bar.set_description(status_text)
            self.progress_bar.update(1)

    def close(self):
        """Close progress bar."""
        if self.progress_bar:
            self.progress_bar.close()

    def get_stats(self) -> str:
        """Get summary statistics."""
        return (f"Processed: {self.current}/{self.total_items}, Changed: {self.changed}, "
                f"Unchanged: {self.unchanged}, Errors: {self.errors}")


def print_colored(message: str, color: str = Fore.WHITE, style: str = Style.NORMAL):
    """Print colored message."""
    print(f"{style}{color}{message}{Style.RESET_ALL}")


def print_error(message: str):
    """Print error message in red."""
    print_colored(f"ERROR: {message}", Fore.RED, Style.BRIGHT)


def print_warning(message: str):
    """Print warning message in yellow."""
    print_colored(f"WARNING: {message}", Fore.YELLOW, Style.BRIGHT)


def print_success(message: str):
    """Print success message in green."""
    print_colored(f"SUCCESS: {message}", Fore.GREEN, Style.BRIGHT)


def print_info(message: str):
    """Print info message in blue."""
    print_colored(f"INFO: {message}", Fore.BLUE)


def print_json(data: Any):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def save_results(results: List[Dict[str, Any]], filename: str) -> Optional[str]:
    """Save processing results to JSON file."""
    results_dir = Path("results")
    results_dir.mkdir(exist_ok=True)

    filepath = results_dir / filename

    try:
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(results, f, indent=2, ensure_ascii=False)
        print_info(f"Results saved to: {filepath}")
        return str(filepath)
    except OSError as e:
        print_error(f"Failed to save results: {e}")
        return None


def parse_properties(assignments: Optional[List[str]]) -> Dict[str, Any]:
    """
    Parse repeated NAME=VALUE arguments into a desired object.

    Repeating a name collects its values into a list.
    """
    desired: Dict[str, Any] = {}
    for assignment in assignments or []:
        if '=' not in assignment:
            raise ValueError(f"Invalid property '{assignment}', expected NAME=VALUE")

        name, value = assignment.split('=', 1)
        name = name.strip()
        if not name:
            raise ValueError(f"Invalid property '{assignment}', name cannot be empty")

        if name in desired:
            existing = desired[name]
            desired[name] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            desired[name] = value
    return desired


def load_desired_objects(file_path: str) -> List[Dict[str, Any]]:
    """Load a JSON file holding a list of desired objects."""
    with open(file_path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValueError(f"{file_path} must contain a JSON object or a list of JSON objects")
    return data


def build_client(config: Config) -> JiraAssetsClient:
    return JiraAssetsClient(config)


def build_manager(config: Config) -> ObjectManager:
    return ObjectManager(build_client(config), max_reference_depth=config.max_reference_depth)


def report_write_result(result: Any, action: str) -> int:
    if result is Outcome.NO_CHANGE_NEEDED:
        print_info("No change needed, object already matches")
        return 0
    if not result:
        print_error(f"Failed to {action} object")
        return 1

    print_success(f"Object {result.get('objectKey')} {action}d (id {result.get('id')})")
    print_json(result)
    return 0


def cmd_init(args) -> int:
    config_path = Path(args.config).expanduser() if args.config else default_config_path()
    if config_path.exists():
        if not args.force:
            print_warning(f"Configuration already exists at {config_path}, use --force to recreate it")
            return 0
        config_path.unlink()

    config = Config(config_file=str(config_path), interactive=True)
    print_success(f"Configuration written to {config.path}")
    return 0


def cmd_schema(args, config: Config) -> int:
    schema = build_client(config).get_schema(args.object_type_id)
    if not schema:
        print_error(f"No schema found for object type {args.object_type_id}")
        return 1

    print(f"\n{Fore.CYAN}{'ID':<8} {'Name':<40} {'Label':<6} Reference type{Style.RESET_ALL}")
    for attribute in schema:
        reference = attribute.reference_object_type_id if attribute.is_reference else ''
        label = 'yes' if attribute.is_label else ''
        print(f"{attribute.id:<8} {attribute.name:<40} {label:<6} {reference}")
    return 0


def cmd_get(args, config: Config) -> int:
    obj = build_client(config).get_by_id(args.object_id)
    if not obj:
        print_error(f"Object {args.object_id} not found")
        return 1
    print_json(obj)
    return 0


def cmd_list(args, config: Config) -> int:
    objects = build_client(config).list_by_type(object_type=args.type, object_type_id=args.type_id)
    if objects is Outcome.FAILURE:
        print_error("Listing objects failed")
        return 1
    print_json(objects)
    print_info(f"{len(objects)} objects")
    return 0


def cmd_query(args, config: Config) -> int:
    objects = build_client(config).query_by_aql(args.aql)
    if objects is Outcome.NOT_FOUND:
        print_warning("No objects matched the query")
        return 0
    if not objects:
        print_error("AQL query failed")
        return 1
    print_json(objects)
    return 0


def cmd_find(args, config: Config) -> int:
    obj = build_client(config).find_by_label_and_type(args.label, args.object_type_id)
    if not obj:
        print_error(f"No single object labelled '{args.label}' in object type {args.object_type_id}")
        return 1
    print_json(obj)
    return 0


def cmd_create(args, config: Config) -> int:
    desired = parse_properties(args.set)
    result = build_manager(config).create(args.object_type_id, desired, args.create_references)
    return report_write_result(result, 'create')


def cmd_update(args, config: Config) -> int:
    manager = build_manager(config)
    live_object = manager.client.get_by_id(args.object_id)
    if not live_object:
        print_error(f"Object {args.object_id} not found")
        return 1

    desired = parse_properties(args.set)
    result = manager.update(live_object, desired, args.create_references)
    return report_write_result(result, 'update')


def cmd_delete(args, config: Config) -> int:
    if not args.yes:
        answer = input(f"Delete object {args.object_id}? This cannot be undone [y/N]: ").strip().lower()
        if answer not in ('y', 'yes'):
            print_info("Deletion cancelled")
            return 0

    if build_manager(config).delete(args.object_id):
        print_success(f"Object {args.object_id} deleted")
        return 0
    print_error(f"Failed to delete object {args.object_id}")
    return 1


def cmd_apply(args, config: Config) -> int:
    try:
        desired_objects = load_desired_objects(args.file)
    except (OSError, ValueError) as e:
        print_error(f"Cannot read {args.file}: {e}")
        return 1

    manager = build_manager(config)
    tracker = ProgressTracker(len(desired_objects), "Applying objects")
    results = []

    try:
        for desired in desired_objects:
            outcome = manager.upsert(args.object_type_id, desired, args.create_references)
            result = {
                'label': desired.get('Label'),
                'timestamp': datetime.now().isoformat()
            }
            if outcome is Outcome.NO_CHANGE_NEEDED:
                result['status'] = 'unchanged'
            elif outcome:
                result.update({'status': 'changed', 'object_key': outcome.get('objectKey'),
                               'object_id': outcome.get('id')})
            else:
                result['status'] = 'failed'
            results.append(result)
            tracker.update(result)
    finally:
        tracker.close()

    print_info(tracker.get_stats())
    save_results(results, f"apply_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json")

    if tracker.errors:
        print_warning("Apply completed with some errors")
        return 1
    print_success("Apply completed successfully!")
    return 0


def setup_argument_parser() -> argparse.ArgumentParser:
    """Set up command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog='jira-objects',
        description="Jira Objects - read, create and update Jira Assets objects by label",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--config', metavar='FILE', help='Path to the settings file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    parser.add_argument('--quiet', '-q', action='store_true', help='Suppress non-error output')

    subparsers = parser.add_subparsers(dest='command', required=True)

    init = subparsers.add_parser('init', help='Create the settings file interactively')
    init.add_argument('--force', action='store_true', help='Replace an existing settings file')

    schema = subparsers.add_parser('schema', help='Show the attributes of an object type')
    schema.add_argument('object_type_id', type=int, metavar='TYPE_ID')

    get = subparsers.add_parser('get', help='Show one object')
    get.add_argument('object_id', metavar='OBJECT_ID')

    list_parser = subparsers.add_parser('list', help='List every object of an object type')
    selector = list_parser.add_mutually_exclusive_group(required=True)
    selector.add_argument('--type', metavar='NAME', help='Object type name')
    selector.add_argument('--type-id', type=int, metavar='ID', help='Object type ID')

    query = subparsers.add_parser('query', help='Run an AQL query')
    query.add_argument('aql', metavar='AQL')

    find = subparsers.add_parser('find', help='Find an object by label within an object type')
    find.add_argument('label', metavar='LABEL')
    find.add_argument('object_type_id', type=int, metavar='TYPE_ID')

    for name, target, help_text in (
        ('create', 'object_type_id', 'Create an object'),
        ('update', 'object_id', 'Update an object, sending only changed attributes'),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        if target == 'object_type_id':
            sub.add_argument(target, type=int, metavar='TYPE_ID')
        else:
            sub.add_argument(target, metavar='OBJECT_ID')
        sub.add_argument('--set', action='append', metavar='NAME=VALUE',
                         help='Property to set, repeat a name for multiple values')
        sub.add_argument('--create-references', action='store_true',
                         help='Create referenced objects that do not exist yet')

    delete = subparsers.add_parser('delete', help='Delete an object (irreversible)')
    delete.add_argument('object_id', metavar='OBJECT_ID')
    delete.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')

    apply = subparsers.add_parser('apply', help='Create or update every object in a JSON file')
    apply.add_argument('file', metavar='FILE')
    apply.add_argument('object_type_id', type=int, metavar='TYPE_ID')
    apply.add_argument('--create-references', action='store_true',
                       help='Create referenced objects that do not exist yet')

    return parser


COMMANDS = {
    'schema': cmd_schema,
    'get': cmd_get,
    'list': cmd_list,
    'query': cmd_query,
    'find': cmd_find,
    'create': cmd_create,
    'update': cmd_update,
    'delete': cmd_delete,
    'apply': cmd_apply,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point."""
    parser = setup_argument_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == 'init':
            return cmd_init(args)

        config = Config(config_file=args.config, interactive=sys.stdin.isatty())
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        return 1
    except KeyboardInterrupt:
        print_warning("Operation cancelled by user")
        return 130

    logger = setup_logging(config)
    if args.verbose:
        logger.setLevel('DEBUG')
        for handler in logger.handlers:
            handler.setLevel('DEBUG')
    elif args.quiet:
        logger.setLevel('ERROR')

    try:
        return COMMANDS[args.command](args, config)
    except ValueError as e:
        print_error(str(e))
        return 1
    except KeyboardInterrupt:
        print_warning("Operation cancelled by user")
        return 130


if __name__ == '__main__':
    sys.exit(main())
