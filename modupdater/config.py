"""Optional YAML settings file.

A control root may carry `modupdater.yml` with site defaults, so cron jobs only need to
pass the branch:

    gerrit_url: https://codereview.qt-project.org
    ssh_host: codereview.qt-project.org
    ssh_port: 29418
    push_user: qt_submodule_update_bot
    foundational_module: qt/qtbase
    unmanaged_branch: master
    repos_dir: repos
    updater_cmd: qt-deps-tool

Every key is optional. Command-line flags take precedence over file values.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass(frozen=True)
class FileSettings:
    gerrit_url: str = "https://codereview.qt-project.org"
    ssh_host: str = "codereview.qt-project.org"
    ssh_port: int = 29418
    push_user: str = ""
    foundational_module: str = "qt/qtbase"
    unmanaged_branch: str = "master"
    repos_dir: str = "repos"
    updater_cmd: str = ""


def load_settings(path: Path) -> FileSettings:
    if not path.exists():
        return FileSettings()

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a YAML mapping, got {type(data)}")

    known = set(FileSettings.__dataclass_fields__)
    unknown = sorted(str(k) for k in data if k not in known)
    if unknown:
        raise ValueError(f"{path} has unknown settings: {unknown}")

    defaults = FileSettings()
    try:
        ssh_port = int(data.get("ssh_port", defaults.ssh_port))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{path}: ssh_port must be an integer") from exc

    return FileSettings(
        gerrit_url=str(data.get("gerrit_url", defaults.gerrit_url)),
        ssh_host=str(data.get("ssh_host", defaults.ssh_host)),
        ssh_port=ssh_port,
        push_user=str(data.get("push_user", defaults.push_user) or ""),
        foundational_module=str(data.get("foundational_module", defaults.foundational_module)),
        unmanaged_branch=str(data.get("unmanaged_branch", defaults.unmanaged_branch)),
        repos_dir=str(data.get("repos_dir", defaults.repos_dir)),
        updater_cmd=str(data.get("updater_cmd", defaults.updater_cmd) or ""),
    )
