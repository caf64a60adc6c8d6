import asyncio
import base64
import io
import re

import numpy as np
import pytest
from PIL import Image

from conftest import FakeRasterizer, disk_pixels
from vectorforge.models import NodeKind, VectorFragment
from vectorforge.operators import OPERATORS
from vectorforge.operators.composition import parse_stops
from vectorforge.operators.params import (
    ColorParams,
    LayerBlurParams,
    PolygonParams,
    TraceParams,
    WaveParams,
)
from vectorforge.operators.utils import IdGenerator


def run(operator, params=None, resolution=512, inputs=None, ctx=None):
    return asyncio.run(operator(params or {}, resolution, inputs or {}, ctx))


def process(kind):
    return OPERATORS[kind].process


def decode_png(markup):
    match = re.search(r'href="data:image/png;base64,([^"]+)"', markup)
    assert match, markup
    with Image.open(io.BytesIO(base64.b64decode(match.group(1)))) as image:
        return np.asarray(image.convert("RGBA"))


def referenced_ids(text):
    return set(re.findall(r"url\(#([^)]+)\)", text))


def defined_ids(defs):
    return set(re.findall(r'id="([^"]+)"', "".join(defs)))


def tag_attributes(markup, tag):
    """Attribute dicts of every <tag> in markup, in document order."""
    return [
        dict(re.findall(r'([\w:-]+)="([^"]*)"', attrs))
        for attrs in re.findall(rf"<{tag}\b([^>]*)>", markup)
    ]


SOURCE = VectorFragment('<g><path d="M 0 0 L 10 0 Z" fill="red" stroke="blue" stroke-width="3"/></g>', ())


# --- Registry and params ---


def test_every_kind_has_an_operator():
    assert set(OPERATORS) == set(NodeKind)


def test_required_ports():
    assert OPERATORS[NodeKind.UNION].required_ports == ["a"]
    assert OPERATORS[NodeKind.OUTPUT].required_ports == ["in"]
    assert OPERATORS[NodeKind.TRANSLATE].required_ports == ["in"]
    assert OPERATORS[NodeKind.GLOW].required_ports == []
    assert OPERATORS[NodeKind.RECTANGLE].ports == ()


def test_params_apply_defaults_and_ignore_malformed_values():
    p = PolygonParams.from_params({"points": "many", "outerRadius": 80, "innerRadius": None})
    assert (p.points, p.outer_radius, p.inner_radius) == (5, 80.0, 50.0)

    wave = WaveParams.from_params({"generators": 99, "seed": 7.0, "waveType": 3})
    assert (wave.generators, wave.seed, wave.wave_type) == (20, 7, "sine")

    assert TraceParams.from_params(None) == TraceParams()
    assert TraceParams.from_params({"invert": "yes"}).invert is False


def test_point_params_must_be_numeric_pairs():
    p = LayerBlurParams.from_params({"pointA": {"x": 0.2, "y": 0.3}, "pointB": {"x": "?"}})
    assert p.point_a == {"x": 0.2, "y": 0.3}
    assert p.point_b == {"x": 0.5, "y": 1.0}


def test_id_generator_is_monotonic_and_salted():
    ids = IdGenerator(salt="ab12")
    assert ids("glow") == "glow_1_ab12"
    assert ids("glow") == "glow_2_ab12"
    assert len(IdGenerator(salt_length=6).salt) == 6


# --- Shapes ---


def test_rectangle_is_centered_and_scaled(make_ctx):
    result = run(process(NodeKind.RECTANGLE), {"width": 200, "height": 100}, 1024, ctx=make_ctx())

    # 200x100 authored at 512 -> 400x200 at 1024, top-left at (312, 412)
    assert 'transform="translate(312, 412)"' in result.markup
    assert "L 400 0" in result.markup
    assert 'fill="white"' in result.markup
    assert 'stroke="none"' in result.markup
    assert result.shared_defs == ()


def test_circle_and_polygon_use_centering_transform(make_ctx):
    for kind in (NodeKind.CIRCLE, NodeKind.POLYGON, NodeKind.WAVY_RING):
        result = run(process(kind), {}, 512, ctx=make_ctx())
        assert 'transform="translate(256, 256)"' in result.markup
        assert "<path" in result.markup


def test_beam_references_its_gradient(make_ctx):
    result = run(process(NodeKind.BEAM), {}, 512, ctx=make_ctx())

    assert len(result.shared_defs) == 1
    assert 'stop-opacity="0.2"' in result.shared_defs[0]
    assert 'offset="60%"' in result.shared_defs[0]
    assert referenced_ids(result.markup) == {"beamGrad_1_test"}
    assert defined_ids(result.shared_defs) == {"beamGrad_1_test"}


def test_path_node_defaults_to_triangle_without_transform(make_ctx):
    result = run(process(NodeKind.PATH), {}, 100, ctx=make_ctx())

    assert "transform" not in result.markup
    assert 'd="M 50 20 L 80 80 L 20 80 Z"' in result.markup
    assert 'stroke-linejoin="round"' in result.markup
    assert 'stroke-width="2"' in result.markup


def test_path_node_role_tensions(make_ctx):
    params = {
        "points": [{"x": 0.5, "y": 0.25, "type": "outer"}, {"x": 0.75, "y": 0.75, "type": "inner"}, {"x": 0.25, "y": 0.75}],
        "tensionOuter": 1,
    }
    result = run(process(NodeKind.PATH), params, 100, ctx=make_ctx())
    assert " C " in result.markup


def test_pen_node_scales_normalized_points(make_ctx):
    params = {
        "points": [
            {"x": 0.25, "y": 0.5, "handleOut": {"x": 0.5, "y": 0.25}},
            {"x": 0.75, "y": 0.5},
            {"x": "broken"},
        ]
    }
    result = run(process(NodeKind.PEN), params, 100, ctx=make_ctx())

    assert "transform" not in result.markup
    assert 'd="M 25 50 C 50 25, 75 50, 75 50 C 75 50, 25 50, 25 50 Z"' in result.markup


# --- Style and filters ---


def test_fill_rewrites_paint_attributes(make_ctx):
    result = run(process(NodeKind.FILL), {"strokeWidth": 4}, inputs={"in": SOURCE}, ctx=make_ctx())

    assert 'fill="red"' not in result.markup
    assert 'stroke="blue"' not in result.markup
    assert '<path fill="white" stroke="white" stroke-width="4"' in result.markup


def test_fill_disabled_keeps_hairline(make_ctx):
    result = run(process(NodeKind.FILL), {"fillEnabled": False}, inputs={"in": SOURCE}, ctx=make_ctx())
    assert '<path fill="none" stroke="white" stroke-width="1"' in result.markup


def test_stroke_keeps_fill(make_ctx):
    result = run(process(NodeKind.STROKE), {"width": 2.5, "opacity": 0.5}, inputs={"in": SOURCE}, ctx=make_ctx())

    assert 'fill="red"' in result.markup
    assert 'stroke="blue"' not in result.markup
    assert 'stroke="white" stroke-width="2.5" stroke-opacity="0.5"' in result.markup


@pytest.mark.parametrize(
    "kind, wide, tight, intensity",
    [(NodeKind.GLOW, "30", "6.6667", "1.5"), (NodeKind.NEON, "15", "3.75", "2")],
)
def test_glow_filters(make_ctx, kind, wide, tight, intensity):
    defs = ("<linearGradient id=\"upstream\"/>",)
    source = VectorFragment('<path d="M 0 0" fill="url(#upstream)"/>', defs)
    result = run(process(kind), {}, inputs={"in": source}, ctx=make_ctx())

    assert result.shared_defs[0] == defs[0]
    definition = result.shared_defs[1]
    assert f'stdDeviation="{wide}"' in definition
    assert f'stdDeviation="{tight}"' in definition
    assert f"0 0 0 {intensity} 0" in definition
    assert 'x="-200%"' in definition and 'width="500%"' in definition
    assert referenced_ids(result.markup) <= defined_ids(result.shared_defs)


def test_soft_blur(make_ctx):
    result = run(process(NodeKind.SOFT_BLUR), {"radius": 8}, inputs={"in": SOURCE}, ctx=make_ctx())
    assert result.markup.startswith('<g filter="url(#blur_1_test)">')
    assert 'stdDeviation="8"' in result.shared_defs[-1]
    assert 'x="-50%"' in result.shared_defs[-1]


def test_gradient_fade_rotates_gradient(make_ctx):
    result = run(process(NodeKind.GRADIENT_FADE), {"direction": 180}, inputs={"in": SOURCE}, ctx=make_ctx())

    definition = result.shared_defs[-1]
    assert 'gradientTransform="rotate(90 0.5 0.5)"' in definition
    assert 'stop-opacity="1"' in definition and 'stop-opacity="0"' in definition
    assert result.markup.startswith('<g mask="url(#fadeMask_1_test)">')
    assert referenced_ids(result.markup + definition) <= defined_ids(result.shared_defs)


def test_filters_without_input_are_empty(make_ctx):
    for kind in (NodeKind.FILL, NodeKind.STROKE, NodeKind.GLOW, NodeKind.NEON, NodeKind.SOFT_BLUR, NodeKind.GRADIENT_FADE):
        assert run(process(kind), ctx=make_ctx()).is_empty


def test_repeated_operators_get_distinct_ids(make_ctx):
    ctx = make_ctx()
    first = run(process(NodeKind.GLOW), inputs={"in": SOURCE}, ctx=ctx)
    second = run(process(NodeKind.GLOW), inputs={"in": first}, ctx=ctx)

    ids = re.findall(r'<filter\b[^>]*\sid="([^"]+)"', "".join(second.shared_defs))
    assert ids == ["glow_1_test", "glow_2_test"]


# --- Inputs ---


def test_image_node_embeds_data_uri(make_ctx):
    buffer = io.BytesIO()
    Image.new("RGBA", (4, 4), (255, 0, 0, 255)).save(buffer, format="PNG")
    uri = "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")

    result = run(process(NodeKind.IMAGE), {"imageSrc": uri}, 256, ctx=make_ctx())

    assert uri in result.markup
    assert 'width="256"' in result.markup


def test_image_node_rejects_missing_or_broken_source(make_ctx):
    assert run(process(NodeKind.IMAGE), {}, ctx=make_ctx()).is_empty
    assert run(process(NodeKind.IMAGE), {"imageSrc": "http://example.com/x.png"}, ctx=make_ctx()).is_empty
    assert run(process(NodeKind.IMAGE), {"imageSrc": "data:image/png;base64,AAAA"}, ctx=make_ctx()).is_empty


def test_gradient_node(make_ctx):
    params = {
        "stops": [
            {"offset": 1, "color": "#ffffff", "opacity": 0.5},
            {"offset": 0, "color": "red", "opacity": "?"},
            {"color": "#00ff00"},
        ],
        "x": 0,
        "y": 1,
    }
    result = run(process(NodeKind.GRADIENT), params, 128, ctx=make_ctx())

    definition = result.shared_defs[0]
    gradient = tag_attributes(definition, "linearGradient")[0]
    assert (gradient["x1"], gradient["y1"], gradient["x2"], gradient["y2"]) == ("0.5", "0", "0.5", "1")
    assert tag_attributes(definition, "stop") == [
        {"offset": "0%", "stop-color": "#000000", "stop-opacity": "1"},
        {"offset": "100%", "stop-color": "#ffffff", "stop-opacity": "0.5"},
    ]
    assert '<rect x="0" y="0" width="128" height="128" fill="url(#grad_1_test)"/>' == result.markup


def test_color_swatch_and_recolor(make_ctx):
    swatch = run(process(NodeKind.COLOR), {}, 64, ctx=make_ctx())
    assert tag_attributes(swatch.markup, "rect") == [
        {"x": "0", "y": "0", "width": "64", "height": "64", "fill": "rgb(255,255,255)"}
    ]

    result = run(process(NodeKind.COLOR), {"r": 255, "g": 0, "b": 51}, inputs={"in": SOURCE}, ctx=make_ctx())
    assert result.markup == f'<g filter="url(#color_1_test)">{SOURCE.markup}</g>'
    matrix = tag_attributes(result.shared_defs[-1], "feColorMatrix")[0]["values"]
    # RGB replaced by the color, alpha row kept
    assert matrix == "0 0 0 0 1 0 0 0 0 0 0 0 0 0 0.2 0 0 0 1 0"
    assert referenced_ids(result.markup) <= defined_ids(result.shared_defs)


def test_color_params_clamp_channels():
    assert ColorParams.from_params({"r": 300, "g": -4, "b": "x"}) == ColorParams(r=255, g=0, b=255)


def test_value_swatch(make_ctx):
    default = run(process(NodeKind.VALUE), {}, 32, ctx=make_ctx())
    assert tag_attributes(default.markup, "rect")[0]["fill"] == "rgb(128,128,128)"

    black = run(process(NodeKind.VALUE), {"value": 0}, 32, ctx=make_ctx())
    assert tag_attributes(black.markup, "rect")[0]["fill"] == "rgb(0,0,0)"
    assert black.shared_defs == ()


def test_alpha_wraps_input_or_emits_swatch(make_ctx):
    faded = run(process(NodeKind.ALPHA), {"value": 0.5}, inputs={"in": A}, ctx=make_ctx())
    assert faded.markup == f'<g opacity="0.5">{A.markup}</g>'
    assert faded.shared_defs == A.shared_defs

    swatch = run(process(NodeKind.ALPHA), {}, 16, ctx=make_ctx())
    rect = tag_attributes(swatch.markup, "rect")[0]
    assert (rect["fill"], rect["opacity"]) == ("white", "1")


def test_parse_stops_clamps_offsets():
    assert parse_stops([{"offset": 2, "color": "#abc", "opacity": -1}]) == [(1.0, "#abc", 0.0)]
    assert parse_stops(["junk", {"offset": True}]) == []


# --- Transforms, combinations, output ---


def test_transforms_wrap_input(make_ctx):
    ctx = make_ctx()
    translated = run(process(NodeKind.TRANSLATE), {"x": 0.25, "y": -0.5}, 200, {"in": SOURCE}, ctx)
    rotated = run(process(NodeKind.ROTATE), {"angle": 45}, 200, {"in": SOURCE}, ctx)
    scaled = run(process(NodeKind.SCALE), {"scale": 2}, 200, {"in": SOURCE}, ctx)

    assert translated.markup == f'<g transform="translate(50, -100)">{SOURCE.markup}</g>'
    assert rotated.markup.startswith('<g transform="rotate(45 100 100)">')
    assert scaled.markup.startswith('<g transform="translate(100, 100) scale(2) translate(-100, -100)">')


A = VectorFragment('<path d="M 0 0 L 5 0 Z" fill="url(#ga)"/>', ('<linearGradient id="ga"/>',))
B = VectorFragment('<path d="M 1 1 L 6 1 Z"/>', ('<filter id="fb"/>',))


def test_union_groups_both_inputs(make_ctx):
    result = run(process(NodeKind.UNION), inputs={"a": A, "b": B}, ctx=make_ctx())
    assert result.markup == f"<g>{A.markup}{B.markup}</g>"
    assert result.shared_defs == A.shared_defs + B.shared_defs


@pytest.mark.parametrize("kind", [NodeKind.UNION, NodeKind.DIFFERENCE, NodeKind.EXCLUSION])
def test_same_input_on_both_ports_keeps_one_copy_of_its_defs(make_ctx, kind):
    result = run(process(kind), inputs={"a": A, "b": A}, ctx=make_ctx())

    assert result.shared_defs.count(A.shared_defs[0]) == 1
    assert len(result.shared_defs) == len(set(result.shared_defs))


@pytest.mark.parametrize("kind", [NodeKind.DIFFERENCE, NodeKind.INTERSECTION, NodeKind.EXCLUSION])
def test_masked_combinations_define_what_they_reference(make_ctx, kind):
    result = run(process(kind), resolution=300, inputs={"a": A, "b": B}, ctx=make_ctx())

    everything = result.markup + "".join(result.shared_defs)
    assert referenced_ids(everything) <= defined_ids(result.shared_defs)
    assert 'maskUnits="userSpaceOnUse"' in everything
    assert "feColorMatrix" in everything


def test_difference_masks_out_b(make_ctx):
    result = run(process(NodeKind.DIFFERENCE), resolution=300, inputs={"a": A, "b": B}, ctx=make_ctx())

    mask = next(d for d in result.shared_defs if d.startswith("<mask"))
    assert '<rect x="0" y="0" width="300" height="300" fill="white"/>' in mask
    assert B.markup in mask
    assert result.markup.startswith('<g mask="url(#mask_1_test)">')


def test_combinations_pass_a_through_without_b(make_ctx):
    for kind in (NodeKind.UNION, NodeKind.DIFFERENCE, NodeKind.INTERSECTION, NodeKind.EXCLUSION):
        assert run(process(kind), inputs={"a": A}, ctx=make_ctx()) is A


def test_output_passes_input_through(make_ctx):
    assert run(process(NodeKind.OUTPUT), inputs={"in": A}, ctx=make_ctx()) is A


# --- Wave ---


def test_wave_emits_white_bitmap(make_ctx):
    result = run(process(NodeKind.WAVE), {"amplitude": 0, "softness": 0}, 32, ctx=make_ctx())

    pixels = decode_png(result.markup)
    assert pixels.shape == (32, 32, 4)
    assert np.all(pixels[..., :3] == 255)
    # Without noise the default gradient is hard-cut at the 50% threshold
    assert np.all(pixels[:16, :, 3] == 255)
    assert np.all(pixels[16:, :, 3] == 0)
    assert 'preserveAspectRatio="none"' in result.markup


def test_wave_is_deterministic(make_ctx):
    params = {"seed": 42, "generators": 7}
    first = run(process(NodeKind.WAVE), params, 64, ctx=make_ctx())
    second = run(process(NodeKind.WAVE), params, 64, ctx=make_ctx())
    other = run(process(NodeKind.WAVE), {"seed": 43, "generators": 7}, 64, ctx=make_ctx())

    assert first == second
    assert first != other


def test_wave_uses_rasterized_input_as_base(make_ctx):
    rasterizer = FakeRasterizer(lambda w, h: disk_pixels(w, h, radius=0.25))
    ctx = make_ctx(rasterizer)

    result = run(process(NodeKind.WAVE), {"amplitude": 0, "softness": 0}, 64, {"in": SOURCE}, ctx)

    assert rasterizer.requests[0].width == 64
    alpha = decode_png(result.markup)[..., 3]
    assert alpha[32, 32] == 255
    assert alpha[0, 0] == 0


def test_wave_falls_back_to_gradient_on_failure(make_ctx, failing_rasterizer):
    ctx = make_ctx(failing_rasterizer)
    failed = run(process(NodeKind.WAVE), {"amplitude": 0, "softness": 0}, 32, {"in": SOURCE}, ctx)
    plain = run(process(NodeKind.WAVE), {"amplitude": 0, "softness": 0}, 32, ctx=make_ctx())
    assert failed == plain
