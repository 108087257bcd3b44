"""Gerrit REST client for staging changes and polling their status.

The review side of a round needs two calls:

- `submit_for_review(repo_path, branch, commit_id, summary)`
  1. `POST /a/changes/<commit_id>/revisions/<commit_id>/review` with `Code-Review +2` and
     `Sanity-Review +1` and the summary as message.
  2. `POST /a/changes/<commit_id>/revisions/<commit_id>/<stage_action>` to hand the
     change to the CI staging queue (the Qt workflow plugin's `gerrit-plugin-qt-workflow~stage`).
- `change_status(repo_path, branch, change_id) -> str`
  `GET /a/changes/<id>` and return the `status` field (`NEW`, `MERGED`, `ABANDONED`, or
  the staging states `STAGING`, `STAGED`, `INTEGRATING`).

Status queries address changes by Gerrit's triplet form `<project>~<branch>~<Change-Id>`,
url-quoted, so the same Change-Id on different branches cannot be confused. Staging right
after the push only knows the commit, so it addresses the change by the bare commit sha,
which Gerrit accepts as a change identifier on its own but not inside a triplet.

Responses are JSON prefixed with Gerrit's `)]}'` guard line, which is stripped before
parsing. Non-2xx responses raise `httpx.HTTPStatusError` via `raise_for_status()`.

`DryRunGerritClient` submits nothing and reports every change as MERGED, so a dry run
drains pending entries immediately.
"""

from __future__ import annotations

import json
import sys
from typing import Any
from urllib.parse import quote

import httpx

XSSI_PREFIX = ")]}'"


def change_triplet(repo_path: str, branch: str, change_id: str) -> str:
    return quote(f"{repo_path}~{branch}~{change_id}", safe="~")


def parse_gerrit_json(text: str) -> Any:
    body = text
    if body.startswith(XSSI_PREFIX):
        body = body[len(XSSI_PREFIX):]
    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Gerrit returned invalid JSON: {exc}") from exc


class GerritClient:
    def __init__(
        self,
        *,
        base_url: str,
        username: str | None = None,
        password: str | None = None,
        stage_action: str = "gerrit-plugin-qt-workflow~stage",
        timeout_s: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth = httpx.BasicAuth(username, password) if username and password else None
        self.stage_action = stage_action
        self.timeout_s = timeout_s
        self.transport = transport

    def submit_for_review(self, *, repo_path: str, branch: str, commit_id: str, summary: str) -> None:
        change = quote(commit_id, safe="")
        review = {
            "message": summary,
            "labels": {"Code-Review": 2, "Sanity-Review": 1},
        }
        with self._client() as client:
            resp = client.post(f"/a/changes/{change}/revisions/{commit_id}/review", json=review)
            resp.raise_for_status()
            resp = client.post(f"/a/changes/{change}/revisions/{commit_id}/{self.stage_action}", json={})
            resp.raise_for_status()
        print(f"[modupdater] staged {commit_id} for {repo_path} ({branch})", file=sys.stderr)

    def change_status(self, *, repo_path: str, branch: str, change_id: str) -> str:
        change = change_triplet(repo_path, branch, change_id)
        with self._client() as client:
            resp = client.get(f"/a/changes/{change}")
            resp.raise_for_status()
        data = parse_gerrit_json(resp.text)
        if not isinstance(data, dict) or not isinstance(data.get("status"), str):
            raise ValueError(f"Gerrit change {change_id} response has no status field")
        return data["status"]

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            auth=self.auth,
            timeout=self.timeout_s,
            follow_redirects=True,
            headers={"User-Agent": "modupdater/0.1"},
            transport=self.transport,
        )


class DryRunGerritClient:
    def submit_for_review(self, *, repo_path: str, branch: str, commit_id: str, summary: str) -> None:
        print(f"[modupdater] (dry-run) would stage {commit_id} for {repo_path} ({branch})", file=sys.stderr)

    def change_status(self, *, repo_path: str, branch: str, change_id: str) -> str:
        return "MERGED"
