"""Resolve the ``latest`` release alias to a concrete tag."""

from __future__ import annotations

import logging

import requests

from tengu_init.errors import ReleaseLookupFailed

_logger = logging.getLogger(__name__)

GITHUB_REPO = "saiden-dev/tengu"
LATEST_RELEASE_URL = f"https://api.github.com/repos/{GITHUB_REPO}/releases/latest"
LATEST_ALIAS = "latest"
REQUEST_TIMEOUT = 10


def fetch_latest_tag(session: requests.Session | None = None) -> str:
    getter = session.get if session is not None else requests.get
    _logger.info("Looking up latest release at %s", LATEST_RELEASE_URL)
    try:
        response = getter(
            LATEST_RELEASE_URL,
            headers={"Accept": "application/vnd.github+json"},
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise ReleaseLookupFailed(f"Could not look up the latest release: {exc}") from exc
    tag = payload.get("tag_name") if isinstance(payload, dict) else None
    if not tag:
        raise ReleaseLookupFailed("Latest release response has no tag_name")
    _logger.debug("Latest release is %s", tag)
    return tag


def resolve_release(release: str, session: requests.Session | None = None) -> str:
    """Return ``release`` unchanged unless it is the ``latest`` alias."""
    if release.strip().lower() != LATEST_ALIAS:
        return release
    return fetch_latest_tag(session)
