"""XSLT stylesheet acquisition & local caching for the declarative migrator.

The :class:`~epcis_transformer.migrator.XsltMigrator` needs an XSLT 1.0
stylesheet that maps EPCIS 1.x markup onto 2.0. This helper fetches it once,
keeps a copy under ``~/.cache/epcis-transformer/stylesheets`` for later
processes, and holds the compiled ``etree.XSLT`` object in memory for the rest
of the current process.

Resolution order for :func:`load_stylesheet`:
        1. Compiled stylesheet already held by this process
        2. Local file path (anything without an ``http``/``https`` scheme)
        3. Existing cached download
        4. Fresh download, validated and written to the cache

Example:
        from epcis_transformer.stylesheet import load_stylesheet
        transform = load_stylesheet("https://example.org/epcis-1.2-to-2.0.xsl")
        result = transform(tree)

Notes:
* A minimal validation check ensures the downloaded file contains the XSLT
    namespace string to avoid caching HTML error pages.
* Downloads are written to a temporary file and renamed into place, so an
    interrupted fetch never leaves a partial stylesheet in the cache.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Dict

from lxml import etree

from .config import load_settings
from .errors import TransformationError

logger = logging.getLogger(__name__)

XSLT_NAMESPACE = "http://www.w3.org/1999/XSL/Transform"
DOWNLOAD_TIMEOUT = 30

_compiled: Dict[str, etree.XSLT] = {}
_lock = threading.Lock()


def get_stylesheet_cache_dir() -> Path:
    """Return (and create if needed) the local stylesheet cache directory.

    ``EPCIS_CACHE_DIR`` replaces ``~/.cache/epcis-transformer`` as the base.
    """
    base = load_settings().cache_dir
    root = Path(base).expanduser() if base else Path.home() / ".cache" / "epcis-transformer"
    cache_dir = root / "stylesheets"
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def get_cached_stylesheet_path(url: str) -> Path:
    """Compute the cached pathname for a stylesheet URL."""
    digest = hashlib.md5(url.encode("utf-8")).hexdigest()
    return get_stylesheet_cache_dir() / f"stylesheet_{digest}.xsl"


def _is_remote(url: str) -> bool:
    return urllib.parse.urlparse(url).scheme in ("http", "https")


def _fetch(url: str) -> bytes:
    with urllib.request.urlopen(url, timeout=DOWNLOAD_TIMEOUT) as response:
        return response.read()


def download_stylesheet(url: str, force: bool = False) -> Path:
    """Download a stylesheet into the local cache.

    Args:
        url: Stylesheet location.
        force: If True, redownload even if a cached file already exists.

    Returns:
        Path to the downloaded (or cached) stylesheet.

    Raises:
        TransformationError: The download failed or did not look like XSLT.
    """
    cached_path = get_cached_stylesheet_path(url)
    if cached_path.exists() and not force:
        logger.info(f"Using cached stylesheet: {cached_path}")
        return cached_path

    logger.info(f"Downloading stylesheet from {url}")
    try:
        content = _fetch(url)
    except (urllib.error.URLError, OSError) as e:
        logger.error(f"Failed to download stylesheet from {url}: {e}")
        raise TransformationError(f"Failed to download stylesheet from {url}: {e}") from e

    if XSLT_NAMESPACE.encode("utf-8") not in content:
        logger.error("Downloaded file does not appear to be an XSLT stylesheet")
        raise TransformationError(
            f"Downloaded file from {url} does not appear to be an XSLT stylesheet"
        )

    partial = cached_path.with_suffix(".part")
    try:
        with open(partial, "wb") as f:
            f.write(content)
        os.replace(partial, cached_path)
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise TransformationError(f"Failed to cache stylesheet: {e}") from e

    logger.info(f"Downloaded and cached stylesheet to {cached_path}")
    return cached_path


def ensure_stylesheet(url: str) -> Path:
    """Return a local path for ``url``, downloading only when nothing is cached."""
    if not _is_remote(url):
        path = Path(url).expanduser()
        if not path.exists():
            raise TransformationError(f"Stylesheet not found: {path}")
        return path
    return download_stylesheet(url)


def load_stylesheet(url: str) -> etree.XSLT:
    """Return the compiled stylesheet for ``url``, fetching at most once per process.

    Raises:
        TransformationError: The stylesheet could not be obtained or compiled.
    """
    with _lock:
        transform = _compiled.get(url)
        if transform is not None:
            return transform

        path = ensure_stylesheet(url)
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        access = etree.XSLTAccessControl(
            read_network=False, write_file=False, create_dir=False, write_network=False
        )
        try:
            transform = etree.XSLT(etree.parse(str(path), parser), access_control=access)
        except (etree.XMLSyntaxError, etree.XSLTParseError) as e:
            raise TransformationError(f"Failed to compile stylesheet {url}: {e}") from e

        _compiled[url] = transform
        logger.debug(f"Compiled stylesheet {url}")
        return transform


def clear_stylesheet_cache() -> None:
    """Delete cached stylesheet files and forget compiled stylesheets."""
    with _lock:
        _compiled.clear()
    cache_dir = get_stylesheet_cache_dir()
    for stylesheet_file in cache_dir.glob("stylesheet_*.xsl"):
        stylesheet_file.unlink()
        logger.info(f"Removed cached stylesheet: {stylesheet_file}")
