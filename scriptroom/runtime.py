import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from scriptroom.agent.model_client import ModelClient
from scriptroom.agent.orchestrator import Orchestrator
from scriptroom.agent.prompts import system_prompt
from scriptroom.agent.retry import RetryPolicy
from scriptroom.assets.publisher import build_publisher
from scriptroom.budget import BudgetLedger, cost_model_from_config
from scriptroom.config.config import apply_proxy_settings
from scriptroom.realtime.bus import TopicBus
from scriptroom.store.service import ProjectRepository
from scriptroom.tools.executor import ToolExecutor
from scriptroom.tools.image_gen import build_image_generator
from scriptroom.tools.video_gen import build_video_generator

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    config: Dict[str, Any]
    bus: TopicBus
    ledger: BudgetLedger
    repository: ProjectRepository
    executor: ToolExecutor
    model_client: ModelClient
    orchestrator: Orchestrator

    def close(self) -> None:
        self.repository.close()


def build_runtime(cfg: Mapping[str, Any], model_client: Optional[ModelClient] = None) -> Runtime:
    """Construct every collaborator from a loaded config dict."""
    cfg = dict(cfg)
    apply_proxy_settings(cfg)
    tools_cfg = cfg.get("tools") or {}

    bus = TopicBus()
    ledger = BudgetLedger(
        daily_cap=float(cfg.get("budget_daily_cap", 5.0)),
        monthly_cap=float(cfg.get("budget_monthly_cap", 50.0)),
    )
    repository = ProjectRepository(data_dir=cfg.get("data_dir"))
    rate = float(cfg.get("video_cost_per_second", 0.0))

    executor = ToolExecutor(
        repository=repository,
        sink=bus,
        ledger=ledger,
        image_generator=build_image_generator(tools_cfg, api_key=cfg.get("model_api_key")),
        video_generator=build_video_generator(tools_cfg, cost_per_second=rate),
        publisher=build_publisher(tools_cfg),
        video_cost=cost_model_from_config(rate),
    )
    model_client = model_client or ModelClient.from_config(cfg)
    orchestrator = Orchestrator(
        repository=repository,
        model_client=model_client,
        executor=executor,
        sink=bus,
        retry_policy=RetryPolicy(
            max_attempts=int(cfg.get("retry_max_attempts", 3)),
            base_delay=float(cfg.get("retry_base_delay_sec", 2.0)),
        ),
        system_prompt=system_prompt(cfg.get("prompt_dir")),
        history_limit=int(cfg.get("history_limit", 0) or 0),
    )
    logger.info(
        f"Runtime ready: model={cfg.get('model_id')} image={tools_cfg.get('image_gen', {}).get('provider')} "
        f"video={tools_cfg.get('video_gen', {}).get('provider')} publisher={tools_cfg.get('publisher', {}).get('provider')}"
    )
    return Runtime(
        config=cfg,
        bus=bus,
        ledger=ledger,
        repository=repository,
        executor=executor,
        model_client=model_client,
        orchestrator=orchestrator,
    )
