# cardmaker/delivery/schemas/body.py
from typing import Any, Dict, Optional

from pydantic import Field

from cardmaker.domain.models import CamelModel, Language


class RenderRequest(CamelModel):
    # End-user text keyed by layer id; empty values fall back to the default text.
    inputs: Dict[str, str] = Field(default_factory=dict)
    pixel_ratio: Optional[float] = Field(default=None, gt=0)
    quality: Optional[float] = Field(default=None, ge=0, le=1)
    language: Optional[Language] = None


class DraftRenderRequest(RenderRequest):
    # Raw template JSON; legacy layer shapes are migrated on read.
    template: Dict[str, Any]


class PreviewRequest(CamelModel):
    template: Optional[Dict[str, Any]] = None
    slug: Optional[str] = None
    inputs: Dict[str, str] = Field(default_factory=dict)
    container_width: float = Field(gt=0)
    container_height: float = Field(gt=0)
    language: Optional[Language] = None
    selected_layer_id: Optional[str] = None
    interactive: bool = False


class ActiveToggle(CamelModel):
    is_active: bool


class SettingsUpdate(CamelModel):
    app_name_en: Optional[str] = None
    app_name_ar: Optional[str] = None
    primary_color: Optional[str] = None
    accent_color: Optional[str] = None


class ShareResponse(CamelModel):
    url: str
