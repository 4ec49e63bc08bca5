import asyncio
import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import requests

from scriptroom.errors import PublishFailure

logger = logging.getLogger(__name__)


class AssetPublisher(ABC):
    """Copies a short-lived provider URL somewhere durable."""

    @abstractmethod
    async def publish(self, source_url: str, logical_name: str) -> str:
        pass


class PassthroughPublisher(AssetPublisher):
    async def publish(self, source_url: str, logical_name: str) -> str:
        return source_url


def _safe_name(logical_name: str) -> str:
    name = re.sub(r"[^a-zA-Z0-9._-]+", "_", (logical_name or "").strip())
    if not name:
        raise PublishFailure("logical_name must be non-empty")
    return name


class LocalAssetPublisher(AssetPublisher):
    """
    Downloads assets into ``publish_dir`` and serves them under ``public_base_url``.

    Publishing the same logical name twice returns the URL of the first copy
    without downloading again.
    """

    def __init__(self, publish_dir: os.PathLike, public_base_url: str, timeout_sec: float = 60):
        self.publish_dir = Path(publish_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._published: Dict[str, str] = {}

    def _existing(self, name: str) -> Optional[Path]:
        plain = self.publish_dir / name
        if plain.exists():
            return plain
        if not self.publish_dir.exists():
            return None
        # Partial downloads never count as published.
        matches = sorted(p for p in self.publish_dir.glob(f"{name}.*") if p.suffix != ".part")
        return matches[0] if matches else None

    def _download(self, source_url: str, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(dest.name + ".part")
        with requests.get(source_url, stream=True, timeout=self.timeout_sec) as resp:
            if resp.status_code != 200:
                raise PublishFailure(f"Download failed: {resp.status_code} {resp.text[:200]}")
            with open(tmp, "wb") as f:
                for chunk in resp.iter_content(8192):
                    f.write(chunk)
        tmp.replace(dest)

    async def publish(self, source_url: str, logical_name: str) -> str:
        name = _safe_name(logical_name)
        if name in self._published:
            return self._published[name]

        existing = self._existing(name)
        if existing is None:
            suffix = Path(urlparse(source_url).path).suffix
            dest = self.publish_dir / f"{name}{suffix}"
            try:
                await asyncio.to_thread(self._download, source_url, dest)
            except requests.RequestException as e:
                raise PublishFailure(str(e)) from e
            except OSError as e:
                raise PublishFailure(f"Could not write {dest}: {e}") from e
            existing = dest
            logger.info(f"Published {source_url} -> {dest}")

        url = f"{self.public_base_url}/{existing.name}"
        self._published[name] = url
        return url


def build_publisher(cfg: Mapping[str, Any]) -> AssetPublisher:
    section: Dict[str, Any] = dict(cfg.get("publisher") or {})
    provider = (section.get("provider") or "passthrough").lower()
    if provider == "passthrough":
        return PassthroughPublisher()
    if provider == "local":
        return LocalAssetPublisher(
            publish_dir=section.get("publish_dir") or "published",
            public_base_url=section.get("public_base_url") or "http://localhost:8000/assets",
        )
    raise ValueError(f"Unknown publisher provider: {provider}")
