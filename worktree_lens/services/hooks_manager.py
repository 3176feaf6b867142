"""Registration of our hooks in the agent's settings document.

Our entries are recognised by ``HOOK_COMMAND_MARKER`` in the command
string. Everything else in the document (other keys, other tools' hook
groups) is left exactly as found.
"""

import copy
import json
import os
import shlex
import tempfile
from pathlib import Path
from typing import List, Optional

from worktree_lens.constants import HOOK_COMMAND_MARKER, HOOK_EVENTS, HOOKS_BACKUP_FILE_NAME
from worktree_lens.exceptions import AccessDeniedError, CorruptError, HooksConfigError, WorktreeLensError
from worktree_lens.models.session import HooksConfig
from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)


class SettingsStore:
    """Reads and writes a JSON settings document."""

    def __init__(self, path: str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> dict:
        """Load the document.

        Returns:
            The parsed document, or ``{}`` if the file does not exist

        Raises:
            CorruptError: invalid JSON or not a JSON object
            AccessDeniedError: the file cannot be read
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as e:
            raise AccessDeniedError(str(self.path), str(e)) from e

        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise CorruptError(str(self.path), f"invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise CorruptError(str(self.path), "settings document is not a JSON object")
        return data

    def write(self, document: dict) -> None:
        """Write the document atomically."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".settings-", suffix=".tmp")
        except OSError as e:
            raise AccessDeniedError(str(self.path), str(e)) from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(json.dumps(document, indent=2) + "\n")
            os.replace(temp_name, self.path)
        except OSError as e:
            raise AccessDeniedError(str(self.path), str(e)) from e
        finally:
            if os.path.exists(temp_name):
                os.unlink(temp_name)


def _is_our_group(group) -> bool:
    if not isinstance(group, dict):
        return False
    for hook in group.get("hooks") or []:
        if isinstance(hook, dict) and HOOK_COMMAND_MARKER in str(hook.get("command", "")):
            return True
    return False


class HooksManager:
    """Applies, removes and inspects our hook registrations."""

    def __init__(self, settings_store: SettingsStore, status_dir: str, command: str = "worktree-lens"):
        """Initialize the manager.

        Args:
            settings_store: The agent's settings document
            status_dir: Directory the hook handler writes records into
            command: Executable invoked by the hooks
        """
        self.settings_store = settings_store
        self.status_dir = status_dir
        self.command = command

    @property
    def hook_command(self) -> str:
        return f"{self.command} hook-handler --status-dir {shlex.quote(str(self.status_dir))}"

    @property
    def backup_path(self) -> Path:
        return Path(self.status_dir) / HOOKS_BACKUP_FILE_NAME

    def _groups(self) -> List[tuple]:
        groups = []
        for event, matcher in HOOK_EVENTS:
            group = {}
            if matcher is not None:
                group["matcher"] = matcher
            group["hooks"] = [{"type": "command", "command": self.hook_command}]
            groups.append((event, group))
        return groups

    @staticmethod
    def _strip_ours(document: dict) -> bool:
        """Remove our groups in place. Returns True if anything was removed."""
        hooks = document.get("hooks")
        if not isinstance(hooks, dict):
            return False

        removed = False
        for event in list(hooks):
            groups = hooks[event]
            if not isinstance(groups, list):
                continue
            kept = [group for group in groups if not _is_our_group(group)]
            if len(kept) != len(groups):
                removed = True
                if kept:
                    hooks[event] = kept
                else:
                    del hooks[event]
        if removed and not hooks:
            del document["hooks"]
        return removed

    def _merge_ours(self, hooks: dict) -> None:
        """Put our current groups into ``hooks`` without moving anything else.

        An event that already holds one of our groups gets the fresh group at
        that position; other events get it appended. Keys keep their order.
        """
        fresh = dict(self._groups())
        for event in list(hooks):
            groups = hooks[event]
            if event in fresh or not isinstance(groups, list):
                continue
            # Left over from an event we no longer register
            kept = [group for group in groups if not _is_our_group(group)]
            if len(kept) != len(groups):
                if kept:
                    groups[:] = kept
                else:
                    del hooks[event]

        for event, group in fresh.items():
            groups = hooks.get(event)
            if not isinstance(groups, list):
                groups = []
                hooks[event] = groups
            position = next((i for i, existing in enumerate(groups) if _is_our_group(existing)), len(groups))
            kept = [existing for existing in groups if not _is_our_group(existing)]
            kept.insert(position, group)
            groups[:] = kept

    def is_configured(self, document: Optional[dict] = None) -> bool:
        if document is None:
            document = self.settings_store.read()
        hooks = document.get("hooks")
        if not isinstance(hooks, dict):
            return False
        return any(
            _is_our_group(group)
            for groups in hooks.values()
            if isinstance(groups, list)
            for group in groups
        )

    def state(self) -> HooksConfig:
        """Whether our hooks are registered and the status directory exists."""
        try:
            configured = self.is_configured()
        except WorktreeLensError as e:
            logger.warning(f"Could not read settings: {e}")
            configured = False
        return HooksConfig(configured=configured, status_dir_exists=os.path.isdir(self.status_dir))

    def apply(self) -> None:
        """Register our hooks, replacing any earlier registration of ours.

        Raises:
            HooksConfigError: the settings document cannot be read or written
        """
        try:
            document = copy.deepcopy(self.settings_store.read())
            hooks = document.get("hooks")
            if not isinstance(hooks, dict):
                hooks = {}
                document["hooks"] = hooks
            self._merge_ours(hooks)

            Path(self.status_dir).mkdir(parents=True, exist_ok=True)
            self.settings_store.write(document)
        except WorktreeLensError as e:
            raise HooksConfigError("apply", str(e)) from e
        except OSError as e:
            raise HooksConfigError("apply", str(e)) from e
        logger.info(f"Hooks applied to {self.settings_store.path}")

    def remove(self) -> bool:
        """Remove our hooks, saving the previous ``hooks`` section to ``backup_path`` first.

        Returns:
            True if the document was changed, False if there was nothing to remove

        Raises:
            HooksConfigError: the settings document cannot be read or written
        """
        try:
            if not self.settings_store.exists():
                return False
            document = copy.deepcopy(self.settings_store.read())
            hooks = copy.deepcopy(document.get("hooks"))
            if not self._strip_ours(document):
                return False
            SettingsStore(str(self.backup_path)).write(hooks)
            self.settings_store.write(document)
        except WorktreeLensError as e:
            raise HooksConfigError("remove", str(e)) from e
        logger.info(f"Hooks removed from {self.settings_store.path}")
        return True
