"""
Tool palette offered to the language model.

Each tool has a pydantic argument model and a variant of the closed ``ToolCall``
union, discriminated on ``name``. ``parse_tool_call`` is the only way raw model
output becomes a typed call; every violation surfaces as ``InvalidArguments``.
"""

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from scriptroom.errors import InvalidArguments
from scriptroom.store.models import SCRIPT_ELEMENT_TYPES, ElementType

VIDEO_DURATIONS = (5, 10)


class AddScriptElementArgs(BaseModel):
    content: str = Field(min_length=1)
    element_type: ElementType

    @field_validator("element_type")
    @classmethod
    def _screenplay_kind(cls, v: ElementType) -> ElementType:
        if v not in SCRIPT_ELEMENT_TYPES:
            raise ValueError(f"element_type must be one of {[t.value for t in SCRIPT_ELEMENT_TYPES]}")
        return v


class GenerateImageArgs(BaseModel):
    description: str = Field(min_length=1)
    scene_context: Optional[str] = None


class GenerateVideoArgs(BaseModel):
    image_url: str = Field(min_length=1)
    description: str = Field(min_length=1)
    duration: int = 5

    @field_validator("duration", mode="before")
    @classmethod
    def _default_when_null(cls, v: Any) -> Any:
        return 5 if v is None else v

    @field_validator("duration")
    @classmethod
    def _allowed_duration(cls, v: int) -> int:
        if v not in VIDEO_DURATIONS:
            raise ValueError(f"duration must be one of {list(VIDEO_DURATIONS)}")
        return v


class AddScriptElementCall(BaseModel):
    name: Literal["add_script_element"] = "add_script_element"
    call_id: str = ""
    args: AddScriptElementArgs


class GenerateImageCall(BaseModel):
    name: Literal["generate_image"] = "generate_image"
    call_id: str = ""
    args: GenerateImageArgs


class GenerateVideoCall(BaseModel):
    name: Literal["generate_video"] = "generate_video"
    call_id: str = ""
    args: GenerateVideoArgs


ToolCall = Annotated[
    Union[AddScriptElementCall, GenerateImageCall, GenerateVideoCall],
    Field(discriminator="name"),
]

TOOL_CALL_VARIANTS = (AddScriptElementCall, GenerateImageCall, GenerateVideoCall)
TOOL_NAMES = tuple(v.model_fields["name"].default for v in TOOL_CALL_VARIANTS)

_tool_call_adapter = TypeAdapter(ToolCall)


def _format_errors(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e.get("loc", ()) if p != "args" and p not in TOOL_NAMES)
        parts.append(f"{loc}: {e.get('msg')}" if loc else str(e.get("msg")))
    return "; ".join(parts)


def parse_tool_call(name: str, raw_arguments: Union[str, Dict[str, Any], None], call_id: str = "") -> ToolCall:
    if name not in TOOL_NAMES:
        raise InvalidArguments(f"Unknown function: {name}")

    if raw_arguments is None or raw_arguments == "":
        args: Any = {}
    elif isinstance(raw_arguments, str):
        try:
            args = json.loads(raw_arguments)
        except json.JSONDecodeError as e:
            raise InvalidArguments(f"Arguments for {name} are not valid JSON: {e.msg}") from e
    else:
        args = raw_arguments
    if not isinstance(args, dict):
        raise InvalidArguments(f"Arguments for {name} must be a JSON object")

    try:
        return _tool_call_adapter.validate_python({"name": name, "call_id": call_id or "", "args": args})
    except ValidationError as e:
        raise InvalidArguments(f"Invalid arguments for {name}: {_format_errors(e)}") from e


TOOL_SCHEMAS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "generate_image",
            "description": "Generate an image based on a detailed description for scene visualization",
            "parameters": {
                "type": "object",
                "properties": {
                    "description": {
                        "type": "string",
                        "description": "Detailed description of the image to generate, including visual elements, lighting, mood, and style",
                    },
                    "scene_context": {
                        "type": "string",
                        "description": "Context about what scene or part of the script this image represents",
                    },
                },
                "required": ["description"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "add_script_element",
            "description": "Add a formatted script element to the project",
            "parameters": {
                "type": "object",
                "properties": {
                    "content": {
                        "type": "string",
                        "description": "The formatted script content (scene heading, action, dialogue, etc.)",
                    },
                    "element_type": {
                        "type": "string",
                        "enum": [t.value for t in SCRIPT_ELEMENT_TYPES],
                        "description": "The type of script element",
                    },
                },
                "required": ["content", "element_type"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "generate_video",
            "description": "Generate a video from an image with motion and animation",
            "parameters": {
                "type": "object",
                "properties": {
                    "image_url": {
                        "type": "string",
                        "description": "URL of the image to animate into a video",
                    },
                    "description": {
                        "type": "string",
                        "description": "Description of the motion and animation to apply to the image",
                    },
                    "duration": {
                        "type": "number",
                        "enum": list(VIDEO_DURATIONS),
                        "description": "Duration of the video in seconds (5 or 10)",
                    },
                },
                "required": ["image_url", "description"],
            },
        },
    },
]
