from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class _Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TextChunk(_Event):
    type: Literal["textChunk"] = "textChunk"
    content: str


class GenerationStarted(_Event):
    type: Literal["generationStarted"] = "generationStarted"
    element_id: str
    element_type: str


class GenerationCompleted(_Event):
    type: Literal["generationCompleted"] = "generationCompleted"
    element_id: str
    asset_url: Optional[str] = None


class ElementAdded(_Event):
    type: Literal["elementAdded"] = "elementAdded"
    element: Dict[str, Any]


class Info(_Event):
    type: Literal["info"] = "info"
    message: str


class Error(_Event):
    type: Literal["error"] = "error"
    message: str


OrchestrationEvent = Annotated[
    Union[TextChunk, GenerationStarted, GenerationCompleted, ElementAdded, Info, Error],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(OrchestrationEvent)


def event_from_wire(data: Mapping[str, Any]) -> OrchestrationEvent:
    return _event_adapter.validate_python(dict(data))
