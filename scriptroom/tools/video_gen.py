import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from scriptroom.errors import GeneratorFailure
from scriptroom.utils.wavespeed_client import WaveSpeedClient, WaveSpeedError

logger = logging.getLogger(__name__)

PLACEHOLDER_NOTE = "Note: Video generation is using a placeholder. Integrate a real video API for actual video generation."


@dataclass(frozen=True)
class VideoResult:
    asset_url: str
    cost: float = 0.0
    note: Optional[str] = None


class VideoGenerator(ABC):
    """Turns a source image plus a motion description into a short clip."""

    @abstractmethod
    async def generate(self, image_url: str, description: str, duration: int) -> VideoResult:
        pass


class PlaceholderVideoGenerator(VideoGenerator):
    """
    Stand-in used until a real video backend is configured.

    Waits a fixed delay to simulate the remote call and hands back the source image
    URL as the "video". It never charges.
    """

    def __init__(self, delay_sec: float = 2.0, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.delay_sec = delay_sec
        self._sleep = sleep

    async def generate(self, image_url: str, description: str, duration: int) -> VideoResult:
        logger.info(f"Generating placeholder video: {description[:60]!r} ({duration}s)")
        await self._sleep(self.delay_sec)
        return VideoResult(asset_url=image_url, cost=0.0, note=PLACEHOLDER_NOTE)


class WaveSpeedVideoGenerator(VideoGenerator):
    def __init__(
        self,
        client: WaveSpeedClient,
        model_id: str = "bytedance/seedance-v1-pro-i2v-480p",
        cost_per_second: float = 0.0,
    ):
        self.client = client
        self.model_id = model_id
        self.cost_per_second = cost_per_second

    async def generate(self, image_url: str, description: str, duration: int) -> VideoResult:
        payload = {"image": image_url, "prompt": description, "duration": duration}
        try:
            url = await asyncio.to_thread(self.client.run, self.model_id, payload)
        except WaveSpeedError as e:
            raise GeneratorFailure(str(e)) from e
        logger.info(f"Video URL: {url}")
        return VideoResult(asset_url=url, cost=round(self.cost_per_second * duration, 4))


def build_video_generator(cfg: Mapping[str, Any], cost_per_second: float = 0.0) -> VideoGenerator:
    """Pick the video generator named by the `video_gen` section of tools_config.yaml."""
    section: Dict[str, Any] = dict(cfg.get("video_gen") or {})
    provider = (section.get("provider") or "placeholder").lower()

    if provider == "placeholder":
        return PlaceholderVideoGenerator(delay_sec=float(section.get("placeholder_delay_sec", 2.0)))
    if provider == "wavespeed":
        client = WaveSpeedClient(section.get("wavespeed_api_key") or "")
        return WaveSpeedVideoGenerator(
            client,
            model_id=section.get("wavespeed_model", "bytedance/seedance-v1-pro-i2v-480p"),
            cost_per_second=cost_per_second,
        )
    raise ValueError(f"Unknown video_gen provider: {provider}")
