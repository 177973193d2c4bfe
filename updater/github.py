from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

import aiohttp

from config.defaults import GITHUB_API_BASE


_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:[-+].*)?$")


def parse_version(text: str | None) -> tuple[int, int, int] | None:
    match = _VERSION_RE.match((text or "").strip())
    if not match:
        return None
    return tuple(int(part or 0) for part in match.groups())


def compare_versions(a: str | None, b: str | None) -> int:
    """-1 / 0 / 1 like cmp(). Unparseable versions sort lowest."""
    pa, pb = parse_version(a), parse_version(b)
    if pa == pb:
        return 0
    if pa is None:
        return -1
    if pb is None:
        return 1
    return -1 if pa < pb else 1


async def fetch_latest_release(
    session: aiohttp.ClientSession,
    repo: str,
    *,
    api_base: str = GITHUB_API_BASE,
    timeout_seconds: float = 15.0,
) -> dict[str, Any] | None:
    """None when the repository has no releases."""
    url = f"{api_base.rstrip('/')}/repos/{repo}/releases/latest"
    headers = {"Accept": "application/vnd.github+json", "User-Agent": "fmdb-updater"}
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    async with session.get(url, headers=headers, timeout=timeout) as resp:
        if resp.status == 404:
            return None
        if resp.status != 200:
            raise RuntimeError(f"GitHub API returned HTTP {resp.status}")
        return await resp.json()


async def check_for_updates(
    repo: str,
    current_version: str,
    *,
    session: aiohttp.ClientSession | None = None,
    api_base: str = GITHUB_API_BASE,
) -> dict[str, Any]:
    result: dict[str, Any] = {
        "success": False,
        "hasUpdates": False,
        "currentVersion": current_version,
        "latestVersion": None,
        "lastChecked": datetime.now(timezone.utc).isoformat(),
    }
    own_session = session is None
    if own_session:
        session = aiohttp.ClientSession()
    try:
        release = await fetch_latest_release(session, repo, api_base=api_base)
    except (aiohttp.ClientError, RuntimeError, TimeoutError) as e:
        print(f"[Updater] Update check failed for {repo}: {e}")
        result["error"] = str(e)
        return result
    finally:
        if own_session:
            await session.close()

    result["success"] = True
    if release is None:
        result["message"] = "No releases published"
        return result

    tag = str(release.get("tag_name") or "")
    latest = tag[1:] if tag.startswith("v") else tag
    result.update(
        {
            "latestVersion": latest,
            "hasUpdates": compare_versions(latest, current_version) > 0,
            "releaseName": release.get("name") or tag,
            "releaseUrl": release.get("html_url"),
            "releaseNotes": release.get("body") or "",
            "publishedAt": release.get("published_at"),
        }
    )
    print(f"[Updater] Checked {repo}: current={current_version} latest={latest} has_updates={result['hasUpdates']}")
    return result
