"""
Data models for image generation.

GenerationRequest and GenerationResult are plain dataclasses owned by the
caller. The Wire* pydantic models mirror the parts of the Gemini
generateContent response we read; every field is optional because the
payload is not under our control.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field


# Limits of the reference slots in the input form
MAX_OBJECT_REFERENCES = 6
MAX_HUMAN_REFERENCES = 5


@dataclass
class GenerationRequest:
    """Everything needed to build one generateContent call.

    Attributes:
        prompt: Final prompt text
        scene_image: The image to transform (required)
        aspect_ratio: Requested aspect ratio, e.g. "16:9"
        image_size: Resolution tier ("1K", "2K", "4K"), only sent to models that support it
        character_reference: Optional character reference image
        style_reference: Optional style reference image
        object_references: Object references, None entries are skipped
        human_references: Human references, None entries are skipped
    """
    prompt: str
    scene_image: Image.Image
    aspect_ratio: str = "16:9"
    image_size: str = "1K"
    character_reference: Optional[Image.Image] = None
    style_reference: Optional[Image.Image] = None
    object_references: list[Optional[Image.Image]] = field(default_factory=list)
    human_references: list[Optional[Image.Image]] = field(default_factory=list)

    def reference_images(self) -> list[Image.Image]:
        """All non-null reference images, in request order."""
        images = []
        if self.character_reference is not None:
            images.append(self.character_reference)
        if self.style_reference is not None:
            images.append(self.style_reference)
        images.extend(img for img in self.object_references if img is not None)
        images.extend(img for img in self.human_references if img is not None)
        return images

    def reference_count(self) -> int:
        return len(self.reference_images())


@dataclass
class GenerationResult:
    """Outcome of one generation run. success is True iff image is set."""
    success: bool = False
    image: Optional[Image.Image] = None
    response_text: Optional[str] = None
    raw_response: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(
        cls,
        message: str,
        raw_response: Optional[str] = None,
        response_text: Optional[str] = None,
    ) -> GenerationResult:
        return cls(
            success=False,
            error_message=message,
            raw_response=raw_response,
            response_text=response_text,
        )

    @classmethod
    def succeeded(
        cls,
        image: Image.Image,
        response_text: str = "",
        raw_response: Optional[str] = None,
    ) -> GenerationResult:
        return cls(
            success=True,
            image=image,
            response_text=response_text,
            raw_response=raw_response,
        )


# =============================================================================
# Wire response (camelCase JSON from the API)
# =============================================================================


class WireModel(BaseModel):
    """Base for response models: accepts aliases and ignores unknown fields."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ApiError(WireModel):
    code: int = 0
    message: str = ""
    status: str = ""

    @property
    def is_meaningful(self) -> bool:
        """An error object only counts if it carries a code or a message."""
        return self.code != 0 or bool(self.message)


class SafetyRating(WireModel):
    category: str = ""
    probability: str = ""


class PromptFeedback(WireModel):
    block_reason: Optional[str] = Field(default=None, alias="blockReason")
    safety_ratings: list[SafetyRating] = Field(default_factory=list, alias="safetyRatings")


class InlineData(WireModel):
    mime_type: str = Field(default="", alias="mimeType")
    data: str = ""


class Part(WireModel):
    text: Optional[str] = None
    inline_data: Optional[InlineData] = Field(default=None, alias="inlineData")
    thought: Optional[bool] = None

    @property
    def has_image_data(self) -> bool:
        return self.inline_data is not None and bool(self.inline_data.data)


class Content(WireModel):
    parts: Optional[list[Part]] = None
    role: str = ""


class Candidate(WireModel):
    content: Optional[Content] = None
    finish_reason: Optional[str] = Field(default=None, alias="finishReason")


class UsageMetadata(WireModel):
    prompt_token_count: int = Field(default=0, alias="promptTokenCount")
    candidates_token_count: int = Field(default=0, alias="candidatesTokenCount")
    total_token_count: int = Field(default=0, alias="totalTokenCount")


class WireResponse(WireModel):
    """Top-level generateContent response (or error body)."""
    candidates: Optional[list[Candidate]] = None
    prompt_feedback: Optional[PromptFeedback] = Field(default=None, alias="promptFeedback")
    usage_metadata: Optional[UsageMetadata] = Field(default=None, alias="usageMetadata")
    error: Optional[ApiError] = None
