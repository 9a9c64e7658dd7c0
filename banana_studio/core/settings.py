"""
Settings - API configuration, model catalogue and credentials.

Values come from the environment (optionally a .env file), the same way the
LLM client resolves its provider and model.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

# Format heuristic only, real keys are longer
MIN_API_KEY_LENGTH = 20

GENERATION_TIMEOUT = 300.0
VALIDATION_TIMEOUT = 30.0

IMAGE_SIZES = ["1K", "2K", "4K"]


@dataclass(frozen=True)
class ModelOption:
    """An image model the client can target."""
    label: str
    model_id: str
    supports_image_size: bool = False


MODEL_OPTIONS = [
    ModelOption("Nano Banana Pro (gemini-3-pro-image-preview)", "gemini-3-pro-image-preview", True),
    ModelOption("Nano Banana (gemini-2.5-flash-image)", "gemini-2.5-flash-image", False),
]

DEFAULT_MODEL_ID = MODEL_OPTIONS[0].model_id


@dataclass(frozen=True)
class AspectRatioOption:
    """Aspect ratio with the output resolution for each image size."""
    label: str
    ratio: str
    size_1k: tuple[int, int]
    size_2k: tuple[int, int]
    size_4k: tuple[int, int]

    def get_resolution(self, image_size: str) -> tuple[int, int]:
        """Return (width, height) for an image size, 1K for anything unknown."""
        if image_size == "2K":
            return self.size_2k
        if image_size == "4K":
            return self.size_4k
        return self.size_1k


ASPECT_RATIOS = [
    AspectRatioOption("1:1 (Square)", "1:1", (1024, 1024), (2048, 2048), (4096, 4096)),
    AspectRatioOption("2:3 (Portrait)", "2:3", (848, 1264), (1696, 2528), (3392, 5056)),
    AspectRatioOption("3:2 (Landscape)", "3:2", (1264, 848), (2528, 1696), (5056, 3392)),
    AspectRatioOption("3:4 (Portrait)", "3:4", (896, 1200), (1792, 2400), (3584, 4800)),
    AspectRatioOption("4:3 (Landscape)", "4:3", (1200, 896), (2400, 1792), (4800, 3584)),
    AspectRatioOption("4:5 (Portrait)", "4:5", (928, 1152), (1856, 2304), (3712, 4608)),
    AspectRatioOption("5:4 (Landscape)", "5:4", (1152, 928), (2304, 1856), (4608, 3712)),
    AspectRatioOption("9:16 (Vertical)", "9:16", (768, 1376), (1536, 2752), (3072, 5504)),
    AspectRatioOption("16:9 (Widescreen)", "16:9", (1376, 768), (2752, 1536), (5504, 3072)),
    AspectRatioOption("21:9 (Ultrawide)", "21:9", (1584, 672), (3168, 1344), (6336, 2688)),
]

DEFAULT_ASPECT_RATIO = "16:9"


def get_model_option(model_id: str) -> ModelOption:
    """Look up a model by id."""
    for option in MODEL_OPTIONS:
        if option.model_id == model_id:
            return option
    known = ", ".join(o.model_id for o in MODEL_OPTIONS)
    raise ValueError(f"Unknown image model '{model_id}'. Known models: {known}")


def get_aspect_ratio(ratio: str) -> AspectRatioOption:
    """Look up an aspect ratio option by its ratio string (e.g. "16:9")."""
    for option in ASPECT_RATIOS:
        if option.ratio == ratio:
            return option
    raise ValueError(f"Unknown aspect ratio '{ratio}'")


def is_api_key_valid(key: Optional[str]) -> bool:
    """Basic format check for an API key (non-blank and long enough)."""
    return bool(key) and bool(key.strip()) and len(key) >= MIN_API_KEY_LENGTH


@dataclass
class ApiSettings:
    """Resolved configuration for talking to the Gemini API."""
    base_url: str = DEFAULT_API_BASE
    model: ModelOption = MODEL_OPTIONS[0]
    generation_timeout: float = GENERATION_TIMEOUT
    validation_timeout: float = VALIDATION_TIMEOUT

    @property
    def generate_url(self) -> str:
        return f"{self.base_url}/{self.model.model_id}:generateContent"

    @property
    def models_url(self) -> str:
        return self.base_url


def load_settings(model_id: Optional[str] = None) -> ApiSettings:
    """Build ApiSettings from the environment.

    BANANA_MODEL selects the model unless model_id is given,
    GEMINI_API_BASE overrides the endpoint.
    """
    load_dotenv(override=True)

    env_model = os.getenv("BANANA_MODEL")
    base_url = os.getenv("GEMINI_API_BASE") or DEFAULT_API_BASE
    model = get_model_option(model_id or env_model or DEFAULT_MODEL_ID)

    logger.debug(f"Settings: BANANA_MODEL={env_model}, using={model.model_id}, base_url={base_url}")

    return ApiSettings(base_url=base_url.rstrip("/"), model=model)


class CredentialsProvider(Protocol):
    """Anything that can hand out the current API key."""

    def get_api_key(self) -> Optional[str]:
        ...


class EnvCredentials:
    """Reads the API key from GEMINI_API_KEY (or another variable)."""

    def __init__(self, variable: str = "GEMINI_API_KEY"):
        self.variable = variable

    def get_api_key(self) -> Optional[str]:
        load_dotenv()
        return os.getenv(self.variable)


class StaticCredentials:
    """A fixed API key, e.g. one typed into a form or passed on the CLI."""

    def __init__(self, api_key: Optional[str]):
        self._api_key = api_key

    def get_api_key(self) -> Optional[str]:
        return self._api_key
