import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "prompts")

BUILTIN_SYSTEM_PROMPT = (
    "You are an AI assistant helping to create video scripts and visual content. "
    "Write screenplay-formatted scripts, add them with add_script_element, "
    "and use generate_image / generate_video for visuals."
)


def load_prompt(prompt_name: str, prompt_dir: Optional[str] = None) -> str:
    prompt_dir = prompt_dir or DEFAULT_PROMPT_DIR
    prompt_path = os.path.join(prompt_dir, f"{prompt_name}.txt")

    try:
        with open(prompt_path, "r", encoding="utf-8") as f:
            return f.read().strip()
    except FileNotFoundError:
        logger.warning(f"Prompt file not found: {prompt_path}")
        return ""


def system_prompt(prompt_dir: Optional[str] = None) -> str:
    return load_prompt("script_assistant", prompt_dir) or BUILTIN_SYSTEM_PROMPT
