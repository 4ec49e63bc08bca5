import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import toml
import yaml
from dotenv import dotenv_values

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
PROJECT_ROOT = PACKAGE_ROOT.parent

CONFIG_FILE = PACKAGE_ROOT / "config" / "config.toml"
TOOLS_CONFIG_FILE = PACKAGE_ROOT / "config" / "tools_config.yaml"


def get_default_config() -> Dict[str, Any]:
    """Get default configuration"""
    return {
        # Storage
        "data_dir": str(PROJECT_ROOT / "projects"),
        "prompt_dir": str(PACKAGE_ROOT / "prompts"),

        # Language model
        "model_provider": "openai",
        "model_id": "gpt-4o",
        "model_api_key": "",
        "model_base_url": "",
        "model_extra_params": {"temperature": 0.7, "max_completion_tokens": 2000},

        # Orchestration
        "retry_max_attempts": 3,
        "retry_base_delay_sec": 2.0,
        "history_limit": 0,

        # Budget
        "budget_daily_cap": 5.0,
        "budget_monthly_cap": 50.0,
        "video_cost_per_second": 0.0,

        # Logging
        "log_file": str(PROJECT_ROOT / "logs" / "app.log"),
        "log_level": "INFO",

        # Other settings
        "proxy_host": "",
        "proxy_port": "",

        # Generators and publisher (merged from tools_config.yaml)
        "tools": get_default_tools_config(),
    }


def get_default_tools_config() -> Dict[str, Any]:
    return {
        "image_gen": {
            "provider": "openai",
            "model": "dall-e-3",
            "size": "1024x1024",
            "quality": "standard",
        },
        "video_gen": {
            "provider": "placeholder",
            "placeholder_delay_sec": 2.0,
        },
        "publisher": {
            "provider": "passthrough",
            "publish_dir": str(PROJECT_ROOT / "published"),
            "public_base_url": "http://localhost:8000/assets",
        },
    }


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_tools_config(env_vars: Mapping[str, str], path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load generator/publisher configuration from YAML and override with environment variables.
    """
    config_path = Path(path) if path is not None else TOOLS_CONFIG_FILE

    tools_config = get_default_tools_config()
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            tools_config = _deep_merge(tools_config, yaml.safe_load(f) or {})

    # Helper to safely set nested dict values
    def set_config(section, key, value):
        if value:
            tools_config.setdefault(section, {})[key] = value

    wavespeed_key = env_vars.get("WAVESPEED_API_KEY")
    for section in ["image_gen", "video_gen"]:
        set_config(section, "wavespeed_api_key", wavespeed_key)

    set_config("image_gen", "provider", env_vars.get("IMAGE_GEN_PROVIDER"))
    set_config("video_gen", "provider", env_vars.get("VIDEO_GEN_PROVIDER"))
    set_config("publisher", "provider", env_vars.get("PUBLISHER_PROVIDER"))
    set_config("publisher", "publish_dir", env_vars.get("PUBLISH_DIR"))
    set_config("publisher", "public_base_url", env_vars.get("PUBLIC_BASE_URL"))

    return tools_config


def _read_env(project_root: Path) -> Dict[str, str]:
    env_vars: Dict[str, str] = {}
    env_candidates = [PACKAGE_ROOT / ".env", project_root / ".env"]
    env_path = next((p for p in env_candidates if p.exists()), None)
    if env_path:
        env_vars.update({k: v for k, v in dotenv_values(env_path).items() if v is not None})
    # Process environment wins over the .env file.
    env_vars.update(os.environ)
    return env_vars


def load_config(
    config_file: Optional[os.PathLike] = None,
    tools_config_file: Optional[os.PathLike] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Load configuration from the TOML file, falling back to defaults where it is silent."""
    path = Path(config_file) if config_file is not None else CONFIG_FILE
    config = get_default_config()
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            config = _deep_merge(config, toml.load(f))

    env_vars = dict(env) if env is not None else _read_env(PROJECT_ROOT)

    # --- Update Core Config from ENV ---
    if "SCRIPTROOM_DATA_DIR" in env_vars:
        config["data_dir"] = env_vars["SCRIPTROOM_DATA_DIR"]
    if "LOG_FILE" in env_vars:
        config["log_file"] = env_vars["LOG_FILE"]
    if "LOG_LEVEL" in env_vars:
        config["log_level"] = env_vars["LOG_LEVEL"]

    # Proxy
    if "PROXY_HOST" in env_vars: config["proxy_host"] = env_vars["PROXY_HOST"]
    if "PROXY_PORT" in env_vars: config["proxy_port"] = env_vars["PROXY_PORT"]

    # Model
    config["model_provider"] = env_vars.get("MODEL_PROVIDER", config["model_provider"])
    config["model_id"] = env_vars.get("MODEL_ID", config["model_id"])
    config["model_api_key"] = env_vars.get("MODEL_API_KEY") or env_vars.get("OPENAI_API_KEY") or config["model_api_key"]
    config["model_base_url"] = env_vars.get("MODEL_BASE_URL", config["model_base_url"])
    if "MODEL_EXTRA_PARAMS" in env_vars:
        config["model_extra_params"] = env_vars["MODEL_EXTRA_PARAMS"]

    # Budget
    for env_key, key in (
        ("BUDGET_DAILY_CAP", "budget_daily_cap"),
        ("BUDGET_MONTHLY_CAP", "budget_monthly_cap"),
        ("VIDEO_COST_PER_SECOND", "video_cost_per_second"),
    ):
        if env_vars.get(env_key):
            config[key] = float(env_vars[env_key])

    tools_path = Path(tools_config_file) if tools_config_file is not None else None
    config["tools"] = load_tools_config(env_vars, path=tools_path)

    return config


def apply_proxy_settings(config: Mapping[str, Any]) -> None:
    proxy_host = config.get("proxy_host")
    proxy_port = config.get("proxy_port")
    if proxy_host and proxy_port:
        os.environ["http_proxy"] = f"http://{proxy_host}:{proxy_port}"
        os.environ["https_proxy"] = f"http://{proxy_host}:{proxy_port}"


config = load_config()
