"""
Config materializer.

Renders ``{{ name }}`` templates and writes them idempotently: identical
content is left alone, changed content is backed up with a timestamp and then
atomically replaced.
"""

import datetime
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from importlib import resources
from typing import Dict, Iterable, Mapping, Optional

from hostopt.errors import TemplateError

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
BACKUP_TIMESTAMP = "%Y%m%d%H%M%S"


class WriteStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class MaterializeResult:
    destination: str
    status: WriteStatus
    backup: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.status is not WriteStatus.UNCHANGED


@dataclass(frozen=True)
class ConfigTemplate:
    destination: str
    template: str
    substitutions: Mapping[str, object] = field(default_factory=dict)
    mode: Optional[int] = None
    owner: Optional[str] = None

    def materialize(self, dry_run: bool = False) -> MaterializeResult:
        return render(
            self.template,
            self.substitutions,
            self.destination,
            mode=self.mode,
            owner=self.owner,
            dry_run=dry_run,
        )


def load_template(name: str) -> str:
    """Read a template shipped in the ``hostopt/templates`` directory."""
    return resources.files("hostopt").joinpath("templates", name).read_text(
        encoding="utf-8"
    )


def render_text(template: str, substitutions: Mapping[str, object]) -> str:
    missing = sorted(
        {m.group(1) for m in PLACEHOLDER.finditer(template)} - set(substitutions)
    )
    if missing:
        raise TemplateError(f"No substitution for placeholder(s): {', '.join(missing)}")
    return PLACEHOLDER.sub(lambda m: str(substitutions[m.group(1)]), template)


def _read(path: str) -> Optional[str]:
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        return None


def backup_file(path: str) -> Optional[str]:
    """
    Copy ``path`` to ``<path>.bak.<timestamp>`` and return the backup path.

    Returns None when there is nothing to back up.
    """
    if not os.path.isfile(path):
        return None
    ts = datetime.datetime.now().strftime(BACKUP_TIMESTAMP)
    backup = f"{path}.bak.{ts}"
    counter = 1
    while os.path.exists(backup):
        backup = f"{path}.bak.{ts}.{counter}"
        counter += 1
    shutil.copy2(path, backup)
    logger.info(f"Backed up {path} to {backup}")
    return backup


def _chown(path: str, owner: str) -> None:
    user, _, group = owner.partition(":")
    shutil.chown(path, user=user or None, group=group or None)


def atomic_write(
    path: str,
    content: str,
    mode: Optional[int] = None,
    owner: Optional[str] = None,
) -> None:
    """Write ``content`` to a temp file beside ``path`` and rename it into place."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    if mode is None:
        mode = os.stat(path).st_mode & 0o7777 if os.path.exists(path) else 0o644
    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        if owner:
            _chown(tmp_path, owner)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def write_config(
    destination: str,
    content: str,
    mode: Optional[int] = None,
    owner: Optional[str] = None,
    dry_run: bool = False,
) -> MaterializeResult:
    current = _read(destination)
    if current == content:
        logger.debug(f"{destination} already up to date")
        return MaterializeResult(destination, WriteStatus.UNCHANGED)

    status = WriteStatus.CREATED if current is None else WriteStatus.UPDATED
    if dry_run:
        logger.info(f"[dry-run] would write {destination} ({status.value})")
        return MaterializeResult(destination, status)

    backup = backup_file(destination) if current is not None else None
    atomic_write(destination, content, mode=mode, owner=owner)
    logger.info(f"Wrote {destination} ({status.value})")
    return MaterializeResult(destination, status, backup)


def render(
    template: str,
    substitutions: Mapping[str, object],
    destination: str,
    mode: Optional[int] = None,
    owner: Optional[str] = None,
    dry_run: bool = False,
) -> MaterializeResult:
    """Render ``template`` and materialize it at ``destination``."""
    return write_config(
        destination,
        render_text(template, substitutions),
        mode=mode,
        owner=owner,
        dry_run=dry_run,
    )


def ensure_lines(
    path: str,
    lines: Iterable[str],
    replace: Optional[Dict[str, str]] = None,
    dry_run: bool = False,
) -> MaterializeResult:
    """
    Patch a line-oriented file so every line in ``lines`` is present.

    ``replace`` maps existing lines (compared stripped) to their new form, e.g.
    ``{"# en_US.UTF-8 UTF-8": "en_US.UTF-8 UTF-8"}`` to uncomment a locale.
    Missing lines are appended; the write goes through write_config.
    """
    current = _read(path) or ""
    out = current.splitlines()
    replace = replace or {}
    out = [replace.get(line.strip(), line) for line in out]
    present = {line.strip() for line in out}
    for line in lines:
        if line.strip() not in present:
            out.append(line)
            present.add(line.strip())
    content = "\n".join(out) + "\n" if out else ""
    return write_config(path, content, dry_run=dry_run)


def rollback(result: MaterializeResult) -> None:
    """Undo a write: restore the backup, or remove a file that did not exist."""
    if result.status is WriteStatus.UPDATED and result.backup:
        shutil.copy2(result.backup, result.destination)
        logger.warning(f"Restored {result.destination} from {result.backup}")
    elif result.status is WriteStatus.CREATED and os.path.exists(result.destination):
        os.remove(result.destination)
        logger.warning(f"Removed {result.destination}")
