#!/usr/bin/env python3
"""Storage - Entries, aliases and confirm keys on top of the file store.

Every operation loads the tree it needs (cache permitting), computes a new
tree in memory and saves it back whole. Nothing is written when an
operation turns out to change nothing.
"""

import copy
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .audit import ChangeLogger
from .config import (
    ALIASES_FILE,
    BACKUP_DIR,
    CHANGELOG_FILE,
    CONFIRM_FILE,
    ENTRIES_FILE,
    get_data_dir,
)
from .crypto import is_encrypted, mask_tree, mask_value
from .errors import InvalidShapeError, NotFoundError
from .examples import EXAMPLE_ALIASES, EXAMPLE_ENTRIES
from .filestore import DIR_MODE, JsonFileStore, TreeCache
from .interpolate import interpolate, interpolate_flat
from .merge import MERGE, REPLACE, Change, deep_merge, diff_trees, summarize
from .objectpath import (
    NOT_FOUND,
    SEPARATOR,
    flatten,
    get_value,
    is_valid_path,
    remove_value,
    set_value,
    split_path,
    validate_tree,
)

ENTRIES = "entries"
ALIASES = "aliases"
CONFIRM = "confirm"
KINDS = (ENTRIES, ALIASES, CONFIRM)


class CodexStore:
    """The three managed trees of one data directory."""

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        cache: Optional[TreeCache] = None,
        pretty: bool = True,
        changelog: Optional[ChangeLogger] = None
    ):
        self.data_dir = get_data_dir(data_dir)
        self.cache = cache if cache is not None else TreeCache()
        self.entries = JsonFileStore(self.data_dir / ENTRIES_FILE, self.cache, pretty, "entries")
        self.aliases = JsonFileStore(self.data_dir / ALIASES_FILE, self.cache, pretty, "aliases")
        self.confirm = JsonFileStore(self.data_dir / CONFIRM_FILE, self.cache, pretty, "confirm keys")
        self.changelog = changelog or ChangeLogger(self.data_dir / CHANGELOG_FILE)

    def _store(self, kind: str) -> JsonFileStore:
        if kind not in KINDS:
            raise ValueError(f"Invalid type: {kind}. Must be one of: {', '.join(KINDS)}")
        return getattr(self, kind)

    def clear_cache(self) -> None:
        """Drop every cached tree so the next load rereads disk."""
        self.cache.clear()

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def load_data(self) -> Dict[str, Any]:
        return self.entries.load()

    def get(self, key: str) -> Any:
        """Get the leaf or subtree at key (an alias is resolved first).

        Raises:
            NotFoundError: If nothing is stored there
        """
        path = self.resolve_key(key)
        value = get_value(self.entries.load(), path)
        if value is NOT_FOUND:
            raise NotFoundError(f"Entry '{key}' not found")
        return value

    def lookup(self, path: str) -> Any:
        """Like get, but returns NOT_FOUND instead of raising."""
        return get_value(self.entries.load(), path)

    def exists(self, key: str) -> bool:
        return self.lookup(self.resolve_key(key)) is not NOT_FOUND

    def set(self, key: str, value: Any) -> Dict[str, Any]:
        """Store value at key, creating intermediate subtrees.

        Returns:
            The new entries tree
        """
        path = self.resolve_key(key)
        tree = set_value(self.entries.load(), path, value)
        self.entries.save(tree)
        self.changelog.log_change("SET", path, detail="encrypted" if is_encrypted(value) else None)
        return tree

    def remove(self, key: str) -> bool:
        """Remove the leaf or subtree at key.

        Aliases and confirm markers pointing at or below key go with it.

        Returns:
            False if nothing was stored there (and nothing was written)
        """
        path = self.resolve_key(key)
        current = self.entries.load()
        tree = remove_value(current, path)
        if tree is current:
            return False

        self.entries.save(tree)
        self.remove_aliases_for_key(path)
        self.remove_confirm_for_key(path)
        self.changelog.log_change("REMOVE", path)
        return True

    def rename(self, old_key: str, new_key: str) -> None:
        """Move a leaf or subtree to a new path.

        Raises:
            NotFoundError: If old_key does not exist
            ValueError: If new_key is already taken
        """
        old_path = self.resolve_key(old_key)
        split_path(new_key)
        current = self.entries.load()

        value = get_value(current, old_path)
        if value is NOT_FOUND:
            raise NotFoundError(f"Entry '{old_key}' not found")
        if get_value(current, new_key) is not NOT_FOUND:
            raise ValueError(f"Entry '{new_key}' already exists")
        if _is_under(new_key, old_path):
            raise ValueError(f"Cannot move '{old_path}' inside itself")

        tree = set_value(remove_value(current, old_path), new_key, value)
        self.entries.save(tree)
        self._retarget_aliases(old_path, new_key)
        self._retarget_confirm(old_path, new_key)
        self.changelog.log_change("RENAME", old_path, detail=new_key)

    def entries_flat(self, masked: bool = False) -> Dict[str, Any]:
        """Return all entries as {dotted.path: leaf}."""
        flat = flatten(self.entries.load())
        if masked:
            return {key: mask_value(value) for key, value in flat.items()}
        return flat

    def search(
        self,
        term: str,
        keys_only: bool = False,
        values_only: bool = False,
        entries: bool = True,
        aliases: bool = True
    ) -> Dict[str, Dict[str, Any]]:
        """Case-insensitive substring search over entries and aliases.

        Encrypted values never match by value and come back masked.

        Returns:
            {"entries": {path: value}, "aliases": {name: target}}
        """
        needle = term.lower()
        entry_matches: Dict[str, Any] = {}
        alias_matches: Dict[str, str] = {}

        if entries:
            for key, value in self.entries_flat().items():
                encrypted = is_encrypted(value)
                key_hit = needle in key.lower()
                value_hit = not encrypted and needle in str(value).lower()
                if _matches(key_hit, value_hit, keys_only, values_only):
                    entry_matches[key] = mask_value(value)

        if aliases:
            for name, target in self.load_aliases().items():
                name_hit = needle in name.lower()
                target_hit = needle in str(target).lower()
                if _matches(name_hit, target_hit, keys_only, values_only):
                    alias_matches[name] = target

        return {ENTRIES: entry_matches, ALIASES: alias_matches}

    def interpolate(self, value: str) -> str:
        """Expand ${key_or_alias} references in value."""
        return interpolate(value, self.resolve_key, self.lookup)

    def interpolate_flat(self, flat: Dict[str, Any]) -> Dict[str, Any]:
        return interpolate_flat(flat, self.resolve_key, self.lookup)

    # ------------------------------------------------------------------
    # Aliases
    # ------------------------------------------------------------------

    def load_aliases(self) -> Dict[str, str]:
        return self.aliases.load()

    def resolve_key(self, key: str) -> str:
        """Return the path an alias points to, or key itself."""
        return self.aliases.load().get(key, key)

    def set_alias(self, alias: str, path: str) -> None:
        """Point alias at path, replacing any other alias for the same path.

        The path must be syntactically valid; it need not exist yet.
        """
        if not alias:
            raise ValueError("Alias name must not be empty")
        split_path(path)

        aliases = {
            name: target for name, target in self.aliases.load().items()
            if target != path or name == alias
        }
        aliases[alias] = path
        self.aliases.save(aliases)
        self.changelog.log_change("ALIAS_SET", alias, detail=path)

    def remove_alias(self, alias: str) -> bool:
        current = self.aliases.load()
        if alias not in current:
            return False
        aliases = {name: target for name, target in current.items() if name != alias}
        self.aliases.save(aliases)
        self.changelog.log_change("ALIAS_REMOVE", alias)
        return True

    def rename_alias(self, old_name: str, new_name: str) -> bool:
        """Rename an alias. Fails if old_name is missing or new_name is taken."""
        current = self.aliases.load()
        if old_name not in current or new_name in current:
            return False
        aliases = {
            (new_name if name == old_name else name): target
            for name, target in current.items()
        }
        self.aliases.save(aliases)
        self.changelog.log_change("ALIAS_RENAME", old_name, detail=new_name)
        return True

    def remove_aliases_for_key(self, key: str) -> List[str]:
        """Drop aliases whose target is key or lies below it."""
        current = self.aliases.load()
        removed = [name for name, target in current.items() if _is_under(target, key)]
        if removed:
            self.aliases.save({n: t for n, t in current.items() if n not in removed})
            for name in removed:
                self.changelog.log_change("ALIAS_REMOVE", name, detail=f"cascade:{key}")
        return removed

    def key_to_alias_map(self) -> Dict[str, str]:
        """Inverted alias map: target path -> alias name."""
        return {target: name for name, target in self.aliases.load().items()}

    def _retarget_aliases(self, old_path: str, new_path: str) -> None:
        current = self.aliases.load()
        updated = {
            name: _rebase(target, old_path, new_path) if _is_under(target, old_path) else target
            for name, target in current.items()
        }
        if updated != current:
            self.aliases.save(updated)

    # ------------------------------------------------------------------
    # Confirm keys
    # ------------------------------------------------------------------

    def load_confirm_keys(self) -> Dict[str, bool]:
        return self.confirm.load()

    def set_confirm(self, key: str) -> None:
        path = self.resolve_key(key)
        current = self.confirm.load()
        if current.get(path) is True:
            return
        keys = dict(current)
        keys[path] = True
        self.confirm.save(keys)
        self.changelog.log_change("CONFIRM_SET", path)

    def remove_confirm(self, key: str) -> bool:
        path = self.resolve_key(key)
        current = self.confirm.load()
        if path not in current:
            return False
        self.confirm.save({k: v for k, v in current.items() if k != path})
        self.changelog.log_change("CONFIRM_REMOVE", path)
        return True

    def has_confirm(self, key: str) -> bool:
        return self.confirm.load().get(self.resolve_key(key)) is True

    def remove_confirm_for_key(self, key: str) -> List[str]:
        """Drop confirm markers on key and everything below it."""
        current = self.confirm.load()
        removed = [k for k in current if _is_under(k, key)]
        if removed:
            self.confirm.save({k: v for k, v in current.items() if k not in removed})
        return removed

    def _retarget_confirm(self, old_path: str, new_path: str) -> None:
        current = self.confirm.load()
        updated = {
            (_rebase(k, old_path, new_path) if _is_under(k, old_path) else k): v
            for k, v in current.items()
        }
        if updated != current:
            self.confirm.save(updated)

    # ------------------------------------------------------------------
    # Import / export / reset
    # ------------------------------------------------------------------

    def export_data(self, kind: str) -> Dict[str, Any]:
        """Return a managed tree ready to be written out.

        Encrypted entry values are masked.
        """
        tree = self._store(kind).load()
        if kind == ENTRIES:
            return mask_tree(tree)
        return dict(tree)

    def import_data(
        self,
        kind: str,
        incoming: Any,
        merge: bool = False,
        preview: bool = False
    ) -> List[Change]:
        """Import a tree into one of the managed files.

        Args:
            kind: entries | aliases | confirm
            incoming: Parsed JSON to import
            merge: Deep-merge into the current tree instead of replacing it
            preview: Only compute the changes; never write

        Returns:
            The classified changes, the same for preview and real runs

        Raises:
            InvalidShapeError: If incoming is not a valid tree for kind;
                raised before anything is written

        """
        store = self._store(kind)
        _validate_import(kind, incoming)

        current = store.load()
        mode = MERGE if merge else REPLACE
        changes = diff_trees(current, incoming, mode)

        if preview:
            return changes

        if not changes:
            return changes

        # The saved tree is cached; keep it independent of the caller's object
        incoming = copy.deepcopy(incoming)
        new_tree = deep_merge(current, incoming) if merge else incoming

        self.create_backup(f"import-{kind}")
        store.save(new_tree)
        counts = summarize(changes)
        self.changelog.log_change(
            "IMPORT", kind,
            detail=f"{mode} +{counts['add']} ~{counts['modify']} -{counts['remove']}"
        )
        return changes

    def reset(self, kind: str) -> None:
        """Empty a managed tree, backing it up first."""
        store = self._store(kind)
        if not store.load():
            return
        self.create_backup(f"reset-{kind}")
        store.save({})
        self.changelog.log_change("RESET", kind)

    def initialize_examples(self, force: bool = False) -> bool:
        """Seed the example entries and aliases.

        Existing entries or aliases are only replaced with force, and are
        backed up first.

        Returns:
            False if data already exists and force was not given
        """
        existing = bool(self.load_data() or self.load_aliases())
        if existing and not force:
            return False
        if existing:
            self.create_backup("init")

        self.entries.save(copy.deepcopy(EXAMPLE_ENTRIES))
        self.aliases.save(dict(EXAMPLE_ALIASES))
        self.changelog.log_change("INIT", ENTRIES, detail=f"{len(flatten(EXAMPLE_ENTRIES))} entries")
        return True

    def stats(self) -> Dict[str, int]:
        """Count leaf entries, aliases and confirm keys."""
        return {
            ENTRIES: len(self.entries_flat()),
            ALIASES: len(self.load_aliases()),
            CONFIRM: len(self.load_confirm_keys()),
        }

    def create_backup(self, label: str) -> Optional[Path]:
        """Copy the managed files into .backups/<label>-<timestamp>/.

        Returns:
            The backup directory, or None if there was nothing to copy
        """
        sources = [s.path for s in (self.entries, self.aliases, self.confirm) if s.exists()]
        if not sources:
            return None

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")
        backup_dir = self.data_dir / BACKUP_DIR / f"{label}-{timestamp}"
        backup_dir.mkdir(parents=True, mode=DIR_MODE)

        for source in sources:
            shutil.copy2(source, backup_dir / source.name)
        return backup_dir


def _matches(key_hit: bool, value_hit: bool, keys_only: bool, values_only: bool) -> bool:
    if keys_only:
        return key_hit
    if values_only:
        return value_hit
    return key_hit or value_hit


def _is_under(path: str, prefix: str) -> bool:
    """True if path equals prefix or is a descendant of it."""
    return path == prefix or path.startswith(prefix + ".")


def _rebase(path: str, old_prefix: str, new_prefix: str) -> str:
    return new_prefix + path[len(old_prefix):]


def _validate_import(kind: str, incoming: Any) -> None:
    validate_tree(incoming, "import file")

    if kind == ENTRIES:
        _check_entry_keys(incoming, "")
    elif kind == ALIASES:
        for name, target in incoming.items():
            if not isinstance(target, str):
                raise InvalidShapeError("Alias values must all be strings (dot-notation paths)")
            if not is_valid_path(target):
                raise InvalidShapeError(f"Alias '{name}' points to an invalid path '{target}'")
    elif kind == CONFIRM:
        for key, value in incoming.items():
            if value is not True:
                raise InvalidShapeError(f"Confirm key '{key}' must be set to true")
            if not is_valid_path(key):
                raise InvalidShapeError(f"Confirm key '{key}' is not a valid path")


def _check_entry_keys(node: Dict[str, Any], prefix: str) -> None:
    # Keys become path segments; a dot or an empty key could not be addressed
    for key, value in node.items():
        if not key or SEPARATOR in key:
            raise InvalidShapeError(f"Invalid key '{key}' under '{prefix or '(root)'}'")
        if isinstance(value, dict):
            _check_entry_keys(value, f"{prefix}{SEPARATOR}{key}" if prefix else key)
