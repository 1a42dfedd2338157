"""VCS REST clients for fetching raw file content at a specific commit."""

from collections.abc import Awaitable, Callable
from urllib.parse import quote

import httpx

from schemasync.schemas.enums import VCSType

GITHUB_COM_URL = "https://github.com"
_GITHUB_API_VERSION = "2022-11-28"

TokenRefresher = Callable[[], Awaitable[str | None]]


def github_api_url(instance_url: str, default_api_url: str) -> str:
    """Return the REST root for GitHub.com or a GitHub Enterprise instance."""
    instance_url = instance_url.rstrip("/")
    if not instance_url or instance_url == GITHUB_COM_URL:
        return default_api_url.rstrip("/")
    return f"{instance_url}/api/v3"


def _file_request(
    vcs_type: VCSType,
    api_url: str,
    external_id: str,
    path: str,
    token: str,
) -> tuple[str, dict[str, str]]:
    if vcs_type == VCSType.GITHUB:
        url = f"{api_url}/repos/{external_id}/contents/{quote(path)}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github.raw+json",
            "X-GitHub-Api-Version": _GITHUB_API_VERSION,
        }
        return url, headers
    project = quote(external_id, safe="")
    url = f"{api_url}/api/v4/projects/{project}/repository/files/{quote(path, safe='')}/raw"
    return url, {"Authorization": f"Bearer {token}"}


async def fetch_file_content(
    client: httpx.AsyncClient,
    vcs_type: VCSType,
    api_url: str,
    external_id: str,
    path: str,
    ref: str,
    token: str,
    refresher: TokenRefresher | None = None,
) -> str | None:
    """Fetch raw file content from GitHub or GitLab at the given commit.

    Args:
        client: Shared httpx async client (for connection pooling).
        vcs_type: Provider the repository lives on.
        api_url: REST root; ``https://api.github.com`` or the GitLab instance URL.
        external_id: ``owner/repo`` on GitHub, the numeric project id on GitLab.
        path: File path within the repository.
        ref: Git ref -- typically a commit SHA.
        token: OAuth access token for the repository.
        refresher: Called once on a 401 to obtain a newer access token.

    Returns:
        The raw file content as a string, or None if the file was not found (404).

    Raises:
        httpx.HTTPStatusError: On non-2xx responses other than 404.
    """
    url, headers = _file_request(vcs_type, api_url, external_id, path, token)
    resp = await client.get(url, params={"ref": ref}, headers=headers)
    if resp.status_code == 401 and refresher is not None:
        new_token = await refresher()
        if new_token and new_token != token:
            url, headers = _file_request(vcs_type, api_url, external_id, path, new_token)
            resp = await client.get(url, params={"ref": ref}, headers=headers)
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    return resp.text
