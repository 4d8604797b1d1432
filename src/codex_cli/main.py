#!/usr/bin/env python3
"""Codex CLI - Hierarchical key-value store for the terminal.

Entries are addressed with dot notation (server.production.ip), may be
encrypted individually with a password, and can be aliased, exported and
imported with a preview of what would change.
"""

import argparse
import getpass
import json
import os
import sys
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from .config import CONFIG_FILE, get_data_dir, get_setting, load_config, set_setting
from .crypto import decrypt_value, encrypt_value, is_encrypted, mask_tree, mask_value
from .errors import CodexError, InterpolationError, NotFoundError
from .examples import USAGE
from .merge import format_changes, summarize
from .objectpath import flatten, is_tree, set_value
from .storage import ALIASES, CONFIRM, ENTRIES, KINDS, CodexStore

PASSWORD_ENV = "CODEX_PASSWORD"


def get_password(prompt="Password: "):
    """Get password from environment variable or prompt.

    Checks CODEX_PASSWORD environment variable first for automation/testing.
    Falls back to interactive getpass prompt, which needs a terminal.

    Security note: Using CODEX_PASSWORD in environment variables is less secure
    as it may be visible in process lists. Only use in isolated environments.
    """
    env_password = os.environ.get(PASSWORD_ENV)
    if env_password:
        return env_password
    if not sys.stdin.isatty():
        raise EOFError("Password input requires an interactive terminal.")
    return getpass.getpass(prompt)


def confirm(message):
    """Ask a yes/no question. Without a terminal the answer is no."""
    if not sys.stdin.isatty():
        return False
    answer = input(message)
    if answer.strip().lower() != "y":
        print("Aborted.")
        return False
    return True


def fail(message):
    print(message, file=sys.stderr)
    sys.exit(1)


def get_store(args):
    """Build the store for the data directory named by args or environment."""
    data_dir = get_data_dir(getattr(args, "data_dir", None))
    config = load_config(data_dir)
    return CodexStore(data_dir, pretty=config.pretty)


def print_entries(entries, key_to_alias=None):
    """Print flat entries as 'path: value' lines, masking encrypted values."""
    key_to_alias = key_to_alias or {}
    for key, value in entries.items():
        alias = key_to_alias.get(key)
        prefix = f"{key} ({alias}):" if alias else f"{key}:"
        print(f"{prefix} {mask_value(value)}")


def print_tree(node, prefix=""):
    """Print a nested tree with box-drawing connectors."""
    items = list(node.items())
    for i, (name, child) in enumerate(items):
        is_last_item = i == len(items) - 1
        connector = "└── " if is_last_item else "├── "
        if is_tree(child):
            print(f"{prefix}{connector}{name}")
            extension = "    " if is_last_item else "│   "
            print_tree(child, prefix + extension)
        else:
            print(f"{prefix}{connector}{name}: {mask_value(child)}")


def cmd_set(args):
    """Set an entry, optionally encrypted and aliased."""
    store = get_store(args)

    if not args.value:
        if not args.alias:
            fail("Missing value. Provide a value or use --alias to update an alias.")
        if not store.exists(args.key):
            fail(f"Entry '{args.key}' not found. Cannot set alias on a non-existent entry.")
        store.set_alias(args.alias, store.resolve_key(args.key))
        print(f"Alias '{args.alias}' added successfully.")
        return

    value = " ".join(args.value)

    if store.exists(args.key) and not args.force and sys.stdin.isatty():
        existing = store.get(args.key)
        shown = json.dumps(mask_tree(existing)) if is_tree(existing) else mask_value(existing)
        print(f"Key '{args.key}' already exists with value: {shown}")
        if not confirm("Overwrite? [y/N] "):
            return

    if args.encrypt:
        password = get_password("Password: ")
        repeat = get_password("Confirm password: ")
        if password != repeat:
            fail("Passwords do not match.")
        value = encrypt_value(value, password)

    store.set(args.key, value)
    print(f"Entry '{args.key}' set successfully.")

    if args.alias:
        store.set_alias(args.alias, store.resolve_key(args.key))
        print(f"Alias '{args.alias}' added successfully.")


def cmd_get(args):
    """Show one entry, a subtree, or everything."""
    store = get_store(args)
    key_to_alias = store.key_to_alias_map()

    if not args.key:
        data = store.load_data()
        if not data:
            if not args.raw:
                print('No entries found. Add one with "ccli set <key> <value>"')
            return
        if args.keys_only:
            for key in flatten(data):
                print(key)
            return
        if args.tree:
            print_tree(data)
        else:
            print_entries(store.interpolate_flat(flatten(data)), key_to_alias)
        return

    value = store.get(args.key)
    path = store.resolve_key(args.key)

    if args.keys_only:
        for key in (flatten({path: value}) if is_tree(value) else [path]):
            print(key)
        return

    if is_tree(value):
        if args.tree:
            print_tree({path: value})
            return
        flat = flatten({path: value})
        if not flat:
            print(f"No entries found under '{args.key}'.")
            return
        print_entries(flat if args.source else store.interpolate_flat(flat), key_to_alias)
        return

    if is_encrypted(value) and args.decrypt:
        value = decrypt_value(value, get_password("Password: "))
        if not args.source:
            value = store.interpolate(value)
        if args.raw:
            print(value)
        else:
            print(f"{path}: {value}")
        return

    if isinstance(value, str) and not is_encrypted(value) and not args.source:
        value = store.interpolate(value)

    if args.raw:
        print(mask_value(value))
    else:
        print_entries({path: value}, key_to_alias)


def cmd_remove(args):
    """Remove an entry or subtree."""
    store = get_store(args)

    if store.has_confirm(args.key) and not args.force:
        if not confirm(f"'{args.key}' is marked for confirmation. Remove it? [y/N] "):
            return

    if not store.remove(args.key):
        print(f"Entry '{args.key}' not found.", file=sys.stderr)
        sys.exit(1)
    print(f"Entry '{args.key}' removed successfully.")


def cmd_rename(args):
    """Move an entry or subtree to a new path."""
    store = get_store(args)
    try:
        store.rename(args.old_key, args.new_key)
    except ValueError as e:
        fail(str(e))
    print(f"Entry '{args.old_key}' renamed to '{args.new_key}'.")


def cmd_find(args):
    """Search keys, values and aliases."""
    store = get_store(args)
    results = store.search(
        args.term,
        keys_only=args.keys_only,
        values_only=args.values_only,
        entries=not args.aliases_only,
        aliases=not args.entries_only,
    )

    entries, aliases = results[ENTRIES], results[ALIASES]
    total = len(entries) + len(aliases)
    if total == 0:
        print(f"No matches found for '{args.term}'.")
        return

    print(f"Found {total} matches for '{args.term}':")
    if entries:
        if aliases:
            print("\nData entries:")
        if args.tree:
            tree = {}
            for key, value in entries.items():
                tree = set_value(tree, key, value)
            print_tree(tree)
        else:
            print_entries(entries)
    if aliases:
        if entries:
            print("\nAliases:")
        for name, target in aliases.items():
            print(f"{name} -> {target}")


def cmd_alias(args):
    """Manage aliases."""
    store = get_store(args)

    if args.alias_command == "set":
        store.set_alias(args.name, args.path)
        print(f"Alias '{args.name}' added successfully.")
    elif args.alias_command == "remove":
        if not store.remove_alias(args.name):
            fail(f"Alias '{args.name}' not found.")
        print(f"Alias '{args.name}' removed successfully.")
    elif args.alias_command == "rename":
        if not store.rename_alias(args.old_name, args.new_name):
            fail(f"Cannot rename alias '{args.old_name}' to '{args.new_name}'.")
        print(f"Alias '{args.old_name}' renamed to '{args.new_name}'.")
    else:
        aliases = store.load_aliases()
        if not aliases:
            print('No aliases found. Add one with "ccli alias set <name> <path>"')
            return
        for name, target in sorted(aliases.items()):
            print(f"{name}: {target}")


def cmd_confirm(args):
    """Manage keys that need confirmation before removal."""
    store = get_store(args)

    if args.confirm_command == "set":
        if not store.exists(args.key):
            fail(f"Entry '{args.key}' not found.")
        store.set_confirm(args.key)
        print(f"Confirmation required for '{args.key}'.")
    elif args.confirm_command == "remove":
        if not store.remove_confirm(args.key):
            fail(f"'{args.key}' does not require confirmation.")
        print(f"Confirmation removed for '{args.key}'.")
    else:
        for key in sorted(store.load_confirm_keys()):
            print(key)


def cmd_export(args):
    """Write entries, aliases and/or confirm keys to JSON files."""
    store = get_store(args)
    kinds = KINDS if args.type == "all" else (args.type,)
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    indent = 2 if args.pretty else None

    for kind in kinds:
        if args.output and len(kinds) == 1:
            output = Path(args.output)
        else:
            output = Path.cwd() / f"codexcli-{kind}-{timestamp}.json"
        output.write_text(json.dumps(store.export_data(kind), indent=indent), encoding="utf-8")
        print(f"{kind.capitalize()} exported to: {output}")


def cmd_import(args):
    """Import a JSON file, replacing or merging, with optional preview."""
    store = get_store(args)
    source = Path(args.file)

    if not source.exists():
        fail(f"Import file not found: {source}")

    try:
        incoming = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        fail("The import file contains invalid JSON.")

    verb = "merge" if args.merge else "replace"

    if args.preview:
        changes = store.import_data(args.type, incoming, merge=args.merge, preview=True)
        if not changes:
            print("No changes.")
            return
        for line in format_changes(changes):
            print(line)
        counts = summarize(changes)
        print(f"\n{counts['add']} to add, {counts['modify']} to modify, "
              f"{counts['remove']} to remove ({verb}; preview only, nothing written)")
        return

    if not args.force:
        print(f"This will {verb} your {args.type} file.")
        if not confirm("Continue? [y/N] "):
            return

    changes = store.import_data(args.type, incoming, merge=args.merge)
    counts = summarize(changes)
    print(f"{args.type.capitalize()} {'merged' if args.merge else 'imported'} successfully "
          f"(+{counts['add']} ~{counts['modify']} -{counts['remove']})")


def cmd_reset(args):
    """Empty entries, aliases and/or confirm keys."""
    store = get_store(args)
    kinds = KINDS if args.type == "all" else (args.type,)

    if not args.force:
        print(f"This will reset your {args.type} to an empty state.")
        if not confirm("Continue? [y/N] "):
            return

    for kind in kinds:
        store.reset(kind)
        print(f"{kind.capitalize()} have been reset to an empty state")


def cmd_config(args):
    """Show or change settings."""
    data_dir = get_data_dir(getattr(args, "data_dir", None))

    try:
        if args.config_command == "get":
            print(get_setting(args.key, data_dir))
        elif args.config_command == "set":
            set_setting(args.key, args.value, data_dir)
            print(f"{args.key} = {get_setting(args.key, data_dir)}")
        else:
            config = load_config(data_dir)
            for key, value in vars(config).items():
                print(f"{key.ljust(12)} : {value}")
    except KeyError as e:
        fail(e.args[0])
    except ValueError as e:
        fail(str(e))


def cmd_info(args):
    """Show version, counts and where the data lives."""
    store = get_store(args)
    counts = store.stats()

    rows = [
        ("Version", package_version()),
        ("Entries", counts[ENTRIES]),
        ("Aliases", counts[ALIASES]),
        ("Confirm keys", counts[CONFIRM]),
        None,
        ("Data directory", store.data_dir),
        ("Entries file", store.entries.path),
        ("Aliases file", store.aliases.path),
        ("Confirm file", store.confirm.path),
        ("Config file", store.data_dir / CONFIG_FILE),
        ("Change log", store.changelog.log_path),
    ]
    for row in rows:
        if row is None:
            print()
            continue
        label, value = row
        print(f"  {(label + ':').ljust(16)}{value}")


def cmd_init(args):
    """Seed example entries and aliases."""
    store = get_store(args)
    print(f"Data directory: {store.data_dir}")

    if not store.initialize_examples(force=args.force):
        print("Entries or aliases already exist. Use --force to overwrite them.")
        return

    print("Example data initialized. Try:")
    print("  ccli get --tree")
    print("  ccli get prodip")
    print("  ccli alias list")


def cmd_examples(args):
    """Print usage examples."""
    print(USAGE, end="")


def cmd_log(args):
    """Show recent changes from the change log."""
    store = get_store(args)

    if args.files:
        for path in store.changelog.get_log_files():
            print(path)
        return

    lines = store.changelog.read_recent(args.lines)
    if not lines:
        print("No changes recorded yet.")
        return
    for line in lines:
        print(line.rstrip("\n"))


def package_version():
    try:
        return version("codex-cli")
    except PackageNotFoundError:
        from . import __version__
        return __version__


def build_parser():
    parser = argparse.ArgumentParser(
        prog='ccli',
        description="Codex CLI - Hierarchical key-value store"
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f"%(prog)s {package_version()}"
    )
    parser.add_argument('--data-dir', help='Data directory (default: $CODEX_DATA_DIR or ~/.codexcli)')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # set
    set_parser = subparsers.add_parser('set', help='Set an entry')
    set_parser.add_argument('key', help='Dot-notation key')
    set_parser.add_argument('value', nargs='*', help='Value (words are joined)')
    set_parser.add_argument('--encrypt', '-e', action='store_true', help='Encrypt the value with a password')
    set_parser.add_argument('--alias', '-a', help='Also create an alias for the key')
    set_parser.add_argument('--force', '-f', action='store_true', help='Overwrite without asking')

    # get
    get_parser = subparsers.add_parser('get', help='Show entries')
    get_parser.add_argument('key', nargs='?', help='Dot-notation key or alias')
    get_parser.add_argument('--tree', '-t', action='store_true', help='Show as a tree')
    get_parser.add_argument('--raw', '-r', action='store_true', help='Print the bare value')
    get_parser.add_argument('--keys-only', '-k', action='store_true', help='Only show keys')
    get_parser.add_argument('--source', '-s', action='store_true', help='Do not expand ${...} references')
    get_parser.add_argument('--decrypt', '-d', action='store_true', help='Decrypt an encrypted value')

    # remove
    remove_parser = subparsers.add_parser('remove', help='Remove an entry or subtree')
    remove_parser.add_argument('key', help='Dot-notation key or alias')
    remove_parser.add_argument('--force', '-f', action='store_true', help='Skip confirmation')

    # rename
    rename_parser = subparsers.add_parser('rename', help='Move an entry or subtree')
    rename_parser.add_argument('old_key', help='Current key')
    rename_parser.add_argument('new_key', help='New key')

    # find
    find_parser = subparsers.add_parser('find', help='Search entries and aliases')
    find_parser.add_argument('term', help='Search term')
    find_parser.add_argument('--keys-only', '-k', action='store_true', help='Match keys only')
    find_parser.add_argument('--values-only', '-v', action='store_true', help='Match values only')
    find_parser.add_argument('--entries-only', '-e', action='store_true', help='Search entries only')
    find_parser.add_argument('--aliases-only', '-a', action='store_true', help='Search aliases only')
    find_parser.add_argument('--tree', '-t', action='store_true', help='Show entry matches as a tree')

    # alias
    alias_parser = subparsers.add_parser('alias', help='Manage aliases')
    alias_sub = alias_parser.add_subparsers(dest='alias_command')
    alias_set = alias_sub.add_parser('set', help='Create or update an alias')
    alias_set.add_argument('name', help='Alias name')
    alias_set.add_argument('path', help='Target key')
    alias_remove = alias_sub.add_parser('remove', help='Remove an alias')
    alias_remove.add_argument('name', help='Alias name')
    alias_rename = alias_sub.add_parser('rename', help='Rename an alias')
    alias_rename.add_argument('old_name', help='Current alias name')
    alias_rename.add_argument('new_name', help='New alias name')
    alias_sub.add_parser('list', help='List aliases')

    # confirm
    confirm_parser = subparsers.add_parser('confirm', help='Manage keys that need confirmation')
    confirm_sub = confirm_parser.add_subparsers(dest='confirm_command')
    confirm_set = confirm_sub.add_parser('set', help='Require confirmation for a key')
    confirm_set.add_argument('key', help='Dot-notation key or alias')
    confirm_remove = confirm_sub.add_parser('remove', help='Stop requiring confirmation')
    confirm_remove.add_argument('key', help='Dot-notation key or alias')
    confirm_sub.add_parser('list', help='List keys that need confirmation')

    types = list(KINDS) + ['all']

    # export
    export_parser = subparsers.add_parser('export', help='Export data to JSON')
    export_parser.add_argument('type', choices=types, help='What to export')
    export_parser.add_argument('--output', '-o', help='Output file (single type only)')
    export_parser.add_argument('--pretty', action='store_true', help='Indent the output')

    # import
    import_parser = subparsers.add_parser('import', help='Import data from JSON')
    import_parser.add_argument('type', choices=[ENTRIES, ALIASES, CONFIRM], help='What to import')
    import_parser.add_argument('file', help='JSON file to import')
    import_parser.add_argument('--merge', '-m', action='store_true', help='Merge instead of replacing')
    import_parser.add_argument('--preview', '-p', action='store_true', help='Show changes without writing')
    import_parser.add_argument('--force', '-f', action='store_true', help='Skip confirmation')

    # reset
    reset_parser = subparsers.add_parser('reset', help='Reset data to an empty state')
    reset_parser.add_argument('type', choices=types, help='What to reset')
    reset_parser.add_argument('--force', '-f', action='store_true', help='Skip confirmation')

    # config
    config_parser = subparsers.add_parser('config', help='Show or change settings')
    config_sub = config_parser.add_subparsers(dest='config_command')
    config_get = config_sub.add_parser('get', help='Show one setting')
    config_get.add_argument('key', help='Setting name')
    config_set = config_sub.add_parser('set', help='Change a setting')
    config_set.add_argument('key', help='Setting name')
    config_set.add_argument('value', help='New value')
    config_sub.add_parser('list', help='Show all settings')

    # info
    subparsers.add_parser('info', help='Show version, counts and file locations')

    # init
    init_parser = subparsers.add_parser('init', help='Seed example data')
    init_parser.add_argument('--force', '-f', action='store_true', help='Overwrite existing entries and aliases')

    # examples
    subparsers.add_parser('examples', help='Show usage examples')

    # log
    log_parser = subparsers.add_parser('log', help='Show recent changes')
    log_parser.add_argument('--lines', '-n', type=int, default=20, help='Number of lines (default: 20)')
    log_parser.add_argument('--files', action='store_true', help='List the log files instead')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        'set': cmd_set,
        'get': cmd_get,
        'remove': cmd_remove,
        'rename': cmd_rename,
        'find': cmd_find,
        'alias': cmd_alias,
        'confirm': cmd_confirm,
        'export': cmd_export,
        'import': cmd_import,
        'reset': cmd_reset,
        'config': cmd_config,
        'info': cmd_info,
        'init': cmd_init,
        'examples': cmd_examples,
        'log': cmd_log,
    }

    try:
        commands[args.command](args)
    except NotFoundError as e:
        fail(str(e))
    except InterpolationError as e:
        fail(str(e))
    except CodexError as e:
        fail(f"Error: {e}")
    except EOFError as e:
        fail(str(e))


if __name__ == '__main__':
    main()
