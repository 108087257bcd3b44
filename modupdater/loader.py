"""Product module listing and initial todo/done partitioning.

A product (e.g. `qt/qt5`) records its submodules in `.gitmodules`:

    [submodule "qtdeclarative"]
        path = qtdeclarative
        url = ../qtdeclarative.git
        branch = dev
        depends = qtbase
        recommends = qtimageformats qtshadertools
        status = essential

Relevant keys
- `url`: relative urls (`../qtdeclarative.git`) are resolved against the product's
  namespace, so `qt/qt5` + `../qtdeclarative.git` becomes `qt/qtdeclarative`. Absolute
  urls keep their path component.
- `branch`: the branch the submodule tracks. `master` marks repositories that do not
  follow the product's branching scheme; they are never tracked.
- `repotype`: `inherited` marks repositories that take their manifest from elsewhere;
  they start out done.
- `depends` / `recommends`: whitespace-separated submodule names. Both become module
  dependencies.

Partitioning
`partition_submodules()` builds `Module`s for every tracked submodule and places them in
done (inherited repositories and the foundational module) or todo (everything else).
Dependencies that point at untracked submodules are dropped; nothing would ever move them
to done.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from urllib.parse import urlparse

from .module import Module


@dataclass(frozen=True)
class Submodule:
    name: str
    repo_path: str
    branch: str
    repo_type: str = ""
    dependencies: list[str] = field(default_factory=list)


def parse_gitmodules(text: str, *, product: str) -> dict[str, Submodule]:
    """Parse a `.gitmodules` document into submodules keyed by repo path."""
    sections: dict[str, dict[str, str]] = {}
    order: list[str] = []
    current: dict[str, str] | None = None

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith(("#", ";")):
            continue
        if line.startswith("["):
            if not line.endswith("]"):
                raise ValueError(f".gitmodules line {lineno}: malformed section header: {raw!r}")
            header = line[1:-1].strip()
            kind, _, quoted = header.partition(" ")
            if kind != "submodule":
                current = None
                continue
            name = quoted.strip().strip('"')
            if not name:
                raise ValueError(f".gitmodules line {lineno}: submodule section without a name")
            current = sections.setdefault(name, {})
            if name not in order:
                order.append(name)
            continue
        if current is None:
            continue
        key, sep, value = line.partition("=")
        if not sep:
            raise ValueError(f".gitmodules line {lineno}: expected 'key = value', got {raw!r}")
        current[key.strip().lower()] = value.strip()

    name_to_path = {name: _repo_path(product, sections[name].get("url", ""), name) for name in order}

    result: dict[str, Submodule] = {}
    for name in order:
        fields = sections[name]
        deps: list[str] = []
        for dep_name in (fields.get("depends", "") + " " + fields.get("recommends", "")).split():
            dep_path = name_to_path.get(dep_name, _repo_path(product, "", dep_name))
            if dep_path not in deps:
                deps.append(dep_path)
        repo_path = name_to_path[name]
        result[repo_path] = Submodule(
            name=name,
            repo_path=repo_path,
            branch=fields.get("branch", ""),
            repo_type=fields.get("repotype", ""),
            dependencies=deps,
        )
    return result


def _repo_path(product: str, url: str, name: str) -> str:
    namespace = posixpath.dirname(product.strip("/"))
    if not url:
        return posixpath.join(namespace, name) if namespace else name

    if "://" in url:
        path = urlparse(url).path
    elif ":" in url and not url.startswith((".", "/")):
        # scp-like syntax: host:path/to/repo.git
        path = url.split(":", 1)[1]
    else:
        path = posixpath.normpath(posixpath.join(product.strip("/"), url))

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return path


def partition_submodules(
    branch: str,
    submodules: dict[str, Submodule],
    *,
    foundational_module: str = "qt/qtbase",
    unmanaged_branch: str = "master",
) -> tuple[dict[str, Module], dict[str, Module]]:
    """Split tracked submodules into the initial (todo, done) maps."""
    tracked = {path: sub for path, sub in submodules.items() if sub.branch != unmanaged_branch}

    todo: dict[str, Module] = {}
    done: dict[str, Module] = {}
    for path, sub in tracked.items():
        module = Module(
            repo_path=path,
            branch=branch,
            dependencies=[d for d in sub.dependencies if d in tracked],
        )
        if sub.repo_type == "inherited" or path == foundational_module:
            done[path] = module
        else:
            todo[path] = module
    return todo, done
