"""Tests for the interactive preview layout and selection state."""

import pytest

from cardmaker.domain.preview_renderer import (
    SELECTION_OUTLINE,
    LayerSelection,
    container_scale,
    drop_to_layer_position,
    render_preview,
)
from cardmaker.domain.render_service import RenderService
from cardmaker.infrastructure.imaging.fonts import FontRegistry
from cardmaker.infrastructure.imaging.loader import AssetLoader

from tests.helpers import FakeLoader, data_url, font_bytes, striped_png


class TestRenderPreview:
    """Tests for render_preview."""

    def test_boxes_are_scaled(self, template):
        layout = render_preview(template, scale=0.5)

        assert (layout.canvas_width, layout.canvas_height) == (1080, 1080)
        assert (layout.width, layout.height) == (540, 540)
        name = layout.layers[0]
        assert name.text == "Your Name"
        assert (name.left, name.top) == (220, 240)
        assert name.anchor_x == pytest.approx(380)
        assert name.font_size == 24
        assert name.line_height == pytest.approx(31.2)
        assert name.height == pytest.approx(31.2 + 4)
        assert name.width > 2 * name.padding
        assert name.direction == "ltr"

    def test_anchor_matches_rasterizer_formula(self, template):
        layout = render_preview(template, scale=1)
        assert layout.layers[0].anchor_x == 760

    def test_user_input_and_multiline_text(self, template):
        layout = render_preview(template, {"layer-job": "CEO\nFounder"}, scale=1)

        job = layout.layers[1]
        assert job.text == "CEO\nFounder"
        assert job.height == pytest.approx(2 * 32 * 1.3 + 8)

    def test_arabic_is_rtl(self, template):
        layout = render_preview(template, scale=1, language="ar")

        assert layout.language == "ar"
        assert layout.layers[0].text == "اسمك"
        assert layout.layers[0].direction == "rtl"
        assert layout.layers[0].font_family == "Luma, serif"

    def test_selection_only_when_interactive(self, template):
        viewer = render_preview(template, scale=1, selected_layer_id="layer-name")
        editor = render_preview(template, scale=1, selected_layer_id="layer-name", interactive=True)

        assert viewer.selected_layer_id is None
        assert not viewer.layers[0].selected
        assert not viewer.layers[0].draggable
        assert editor.layers[0].selected
        assert editor.layers[0].outline == SELECTION_OUTLINE
        assert editor.layers[1].outline is None
        assert editor.layers[1].draggable

    def test_shadow_and_opacity(self, template):
        template.layers[0].shadow = True
        template.layers[0].shadow_blur = 4
        template.layers[0].opacity = 0.5

        box = render_preview(template, scale=1).layers[0]

        assert box.text_shadow == "2px 2px 4px rgba(0,0,0,0.5)"
        assert box.opacity == 0.5

    def test_background_crop(self, template):
        template.background_url = "https://example.com/bg.jpg"

        layout = render_preview(template, scale=1, background_size=(2000, 1000))

        assert layout.background.fit == "cover"
        assert (layout.background.crop.sx, layout.background.crop.sw) == (500, 1000)

    def test_json_uses_camel_case(self, template):
        data = render_preview(template, scale=1).to_json()
        assert "canvasWidth" in data
        assert "anchorX" in data["layers"][0]

    def test_layer_at_prefers_topmost(self, template):
        template.layers[1].x = template.layers[0].x
        template.layers[1].y = template.layers[0].y
        layout = render_preview(template, scale=1)

        assert layout.layer_at(450, 490) == "layer-job"
        assert layout.layer_at(5, 5) is None


class TestSelection:
    """Tests for the selection state machine."""

    def test_transitions(self, template):
        layout = render_preview(template, scale=1)
        selection = LayerSelection()
        assert selection.state == "idle"

        assert selection.pointer_down(layout, 450, 490) == "layer-name"
        assert selection.state == "selected"

        selection.select("layer-job")
        assert selection.selected_id == "layer-job"

        selection.layer_deleted("layer-name")
        assert selection.selected_id == "layer-job"
        selection.layer_deleted("layer-job")
        assert selection.state == "idle"

    def test_pointer_down_on_empty_canvas_keeps_selection(self, template):
        layout = render_preview(template, scale=1)
        selection = LayerSelection("layer-job")

        assert selection.pointer_down(layout, 5, 5) is None
        assert selection.selected_id == "layer-job"


class TestScale:
    """Tests for container fitting and drop conversion."""

    def test_container_scale(self, template):
        assert container_scale(template, 572, 2000) == pytest.approx(0.5)

    def test_drop_position_is_unscaled(self):
        assert drop_to_layer_position(110, 120, 0.5) == (220, 240)


class TestServicePreview:
    """Tests for RenderService.preview."""

    @pytest.mark.asyncio
    async def test_preview_fits_container_and_loads_fonts(self, template):
        loader = FakeLoader({"k": font_bytes()})
        fonts = FontRegistry(sources={"Karbon": {400: "k", 700: "k"}}, loader=loader)
        service = RenderService(fonts=fonts, executor=None, loader=AssetLoader(timeout=5))
        template.background_url = data_url(striped_png(200, 100))

        layout = await service.preview(template, container_width=572, container_height=572, interactive=True, selected_layer_id="layer-job")

        assert layout.scale == pytest.approx(0.5)
        assert loader.calls == ["k"]
        assert layout.background.crop.sx == 50
        assert layout.layers[1].selected
