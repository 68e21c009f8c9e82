from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from reelsmith.schemas.caption import CaptionStyle
from reelsmith.schemas.transcription import WordTimestamp

FlowType = Literal["single-image", "multi-image", "stock-video"]
BlendMode = Literal[
    "normal",
    "multiply",
    "screen",
    "overlay",
    "darken",
    "lighten",
    "color-dodge",
    "color-burn",
]


class _WireModel(BaseModel):
    """Accepts both snake_case and the camelCase names used on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Overlay(_WireModel):
    id: str | None = None
    name: str | None = None
    type: Literal["image", "video"] = "video"
    file_path: str
    # Unknown modes fall back to normal at render time
    blend_mode: str = "normal"
    # Clamped to [0, 1] when the filter graph is built
    opacity: float = 1.0


class ImageSlide(_WireModel):
    image: str
    duration: float = Field(gt=0)


class StockClip(_WireModel):
    video: str
    duration: float | None = None
    start_time: float | None = None


class _CompositionBase(_WireModel):
    audio_path: str = Field(min_length=1)
    audio_duration: float = Field(gt=0)
    overlays: list[Overlay] = Field(default_factory=list)

    captions_enabled: bool = False
    # A preset name (classic, modern, ...) or an explicit style
    caption_style: CaptionStyle | str | None = None
    script: str | None = None
    word_timestamps: list[WordTimestamp] | None = None


class SingleImageRequest(_CompositionBase):
    flow_type: Literal["single-image"] = "single-image"
    image: str = Field(min_length=1)


class MultiImageRequest(_CompositionBase):
    flow_type: Literal["multi-image"] = "multi-image"
    images: list[ImageSlide] = Field(min_length=1)


class StockVideoRequest(_CompositionBase):
    flow_type: Literal["stock-video"] = "stock-video"
    videos: list[StockClip] = Field(min_length=1)
    # Repeat the clip sequence until it covers the audio
    loop: bool = False


CompositionRequest = Annotated[
    Union[SingleImageRequest, MultiImageRequest, StockVideoRequest],
    Field(discriminator="flow_type"),
]

_composition_adapter: TypeAdapter[CompositionRequest] = TypeAdapter(CompositionRequest)


def parse_composition_request(data: dict) -> CompositionRequest:
    """Validate a raw (camelCase or snake_case) payload into a typed request."""
    return _composition_adapter.validate_python(data)
