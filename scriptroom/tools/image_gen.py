import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from openai import AsyncOpenAI, OpenAIError

from scriptroom.errors import GeneratorFailure
from scriptroom.utils.wavespeed_client import WaveSpeedClient, WaveSpeedError

logger = logging.getLogger(__name__)


class ImageGenerator(ABC):
    """Produces a (possibly short-lived) image URL from a text description."""

    @abstractmethod
    async def generate(self, description: str) -> str:
        pass


class OpenAIImageGenerator(ImageGenerator):
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "dall-e-3",
        size: str = "1024x1024",
        quality: str = "standard",
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.size = size
        self.quality = quality
        self.client = client or AsyncOpenAI(api_key=api_key or None)

    async def generate(self, description: str) -> str:
        try:
            resp = await self.client.images.generate(
                model=self.model,
                prompt=description,
                n=1,
                size=self.size,
                quality=self.quality,
            )
        except OpenAIError as e:
            raise GeneratorFailure(str(e)) from e

        url = resp.data[0].url if resp.data else None
        if not url:
            raise GeneratorFailure("No image URL returned from OpenAI")
        logger.info(f"Image URL: {url}")
        return url


class WaveSpeedImageGenerator(ImageGenerator):
    def __init__(self, client: WaveSpeedClient, model_id: str = "wavespeed-ai/flux-dev", size: str = "1024*1024"):
        self.client = client
        self.model_id = model_id
        self.size = size

    async def generate(self, description: str) -> str:
        payload = {"prompt": description, "size": self.size, "enable_base64_output": False}
        try:
            url = await asyncio.to_thread(self.client.run, self.model_id, payload)
        except WaveSpeedError as e:
            raise GeneratorFailure(str(e)) from e
        logger.info(f"Image URL: {url}")
        return url


def build_image_generator(cfg: Mapping[str, Any], api_key: Optional[str] = None) -> ImageGenerator:
    """Pick the image generator named by the `image_gen` section of tools_config.yaml."""
    section: Dict[str, Any] = dict(cfg.get("image_gen") or {})
    provider = (section.get("provider") or "openai").lower()

    if provider == "openai":
        return OpenAIImageGenerator(
            api_key=api_key,
            model=section.get("model", "dall-e-3"),
            size=section.get("size", "1024x1024"),
            quality=section.get("quality", "standard"),
        )
    if provider == "wavespeed":
        client = WaveSpeedClient(section.get("wavespeed_api_key") or "")
        return WaveSpeedImageGenerator(
            client,
            model_id=section.get("wavespeed_model", "wavespeed-ai/flux-dev"),
        )
    raise ValueError(f"Unknown image_gen provider: {provider}")
