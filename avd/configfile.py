"""Reading and writing the configuration file, with backups on write."""

from __future__ import annotations

import logging
import os
from datetime import datetime

from avd.config import Config, ConfigError

__all__ = ["expand_path", "read_config", "write_config"]

_log = logging.getLogger(__name__)


def expand_path(path: str) -> str:
    """Expand a leading ``~`` to the user's home directory."""
    return os.path.expanduser(path)


def read_config(path: str) -> Config | None:
    """Load the config at ``path``; return None if the file does not exist."""
    _log.debug("read_config(%r)", path)
    path = expand_path(path)
    if not os.path.exists(path):
        return None
    try:
        with open(path, "rb") as fh:
            content = fh.read()
    except OSError as exc:
        raise ConfigError(f"unable to read file '{path}': {exc}") from exc
    _log.debug("unparsed config == %s", content)
    config = Config.loads(content)
    _log.debug("parsed config == %s", config.dumps())
    return config


def write_config(path: str, config: Config) -> None:
    """Write ``config`` to ``path``, moving any previous file to a backup directory."""
    path = expand_path(path)
    path_new = path + ".new"
    try:
        fd = os.open(path_new, os.O_WRONLY | os.O_TRUNC | os.O_CREAT, 0o750)
    except OSError as exc:
        raise ConfigError(f"unable to open the data file '{path_new}': {exc}") from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            config.write_to(fh)
    except OSError as exc:
        raise ConfigError(f"unable to write data to file '{path_new}': {exc}") from exc

    backup_dir = f"{path}-backup"
    try:
        os.makedirs(backup_dir, mode=0o755, exist_ok=True)
    except OSError:
        _log.error("unable to create directory '%s'", backup_dir)
    else:
        backup_path = os.path.join(backup_dir, datetime.now().strftime("%Y%m%d_%H%M.yaml"))
        _log.debug("backup path: '%s'", backup_path)
        try:
            os.replace(path, backup_path)
        except OSError as exc:
            _log.error("cannot move '%s' to '%s': %s", path, backup_path, exc)

    try:
        os.replace(path_new, path)
    except OSError as exc:
        raise ConfigError(f"cannot move '{path_new}' to '{path}': {exc}") from exc
    _log.info("wrote to '%s' the config %r", path, config)