"""SVG export for traced color layers."""
from typing import List, Sequence

from colortrace.color_space import rgb_to_hex
from colortrace.types import Curve, Point, SegmentTag, SvgOptions, TraceResult


def format_number(x: float, precision: int) -> str:
    """
    Format number with given precision.

    Args:
        x: Number to format
        precision: Decimal places

    Returns:
        Formatted string
    """
    formatted = f"{x:.{precision}f}"
    # Remove trailing zeros and decimal point if not needed
    if '.' in formatted:
        formatted = formatted.rstrip('0').rstrip('.')
    if formatted == '-0':
        formatted = '0'
    return formatted


def _format_point(point: Point, scale: float, precision: int) -> str:
    return f"{format_number(point.x * scale, precision)} {format_number(point.y * scale, precision)}"


def curve_to_path_command(curve: Curve, scale: float = 1.0, precision: int = 3) -> str:
    """
    Convert one closed curve to SVG path commands.

    The path starts at the end point of the last segment; CURVE segments
    become absolute cubic 'C' commands and CORNER segments an 'L' polyline
    through the vertex.

    Args:
        curve: Curve to convert
        scale: Coordinate scale factor
        precision: Decimal precision

    Returns:
        SVG path command string
    """
    if len(curve) == 0:
        return ""

    fmt = lambda p: _format_point(p, scale, precision)

    cmds = [f"M {fmt(curve[len(curve) - 1].c2)}"]
    for segment in curve:
        if segment.tag == SegmentTag.CURVE:
            cmds.append(f"C {fmt(segment.c0)},{fmt(segment.c1)},{fmt(segment.c2)}")
        else:
            cmds.append(f"L {fmt(segment.vertex)} {fmt(segment.c2)}")

    return ' '.join(cmds)


def path_data(curves: Sequence[Curve], scale: float = 1.0, precision: int = 3) -> str:
    """Path data for several closed curves, one subpath each."""
    return ' '.join(
        cmd for cmd in (curve_to_path_command(c, scale, precision) for c in curves) if cmd
    )


def path_element(
    curves: Sequence[Curve],
    color: str,
    path_type: str = "fill",
    scale: float = 1.0,
    precision: int = 3
) -> str:
    """
    Convert curves to one SVG path element.

    Args:
        curves: Curves drawn with the same color
        color: Any SVG color value
        path_type: "fill" (even-odd filled) or "curve" (stroked outline)
        scale: Coordinate scale factor
        precision: Decimal precision

    Returns:
        SVG path element string
    """
    d = path_data(curves, scale, precision)
    if path_type == "curve":
        return f'<path d="{d}" stroke="{color}" fill="none"/>'
    return f'<path d="{d}" stroke="none" fill="{color}" fill-rule="evenodd"/>'


def output_size(result: TraceResult, options: SvgOptions) -> tuple:
    """Width and height of the SVG canvas (original image size times scale_size)."""
    scale = options.scale_size / result.scale_back
    return int(round(result.width * scale)), int(round(result.height * scale))


def generate_svg(result: TraceResult, options: SvgOptions = None) -> str:
    """
    Generate an SVG document from traced layers.

    Args:
        result: Trace result
        options: SVG options, defaults if None

    Returns:
        Complete SVG string
    """
    options = options or SvgOptions()
    scale = options.scale_size / result.scale_back
    width, height = output_size(result, options)

    elements: List[str] = []
    if result.mode == "color":
        if not result.remove_background:
            elements.append(
                f'<g id="background"><rect x="0" y="0" fill="{rgb_to_hex(result.background)}" '
                f'width="{width}" height="{height}"></rect></g>'
            )
        for layer in result.layers:
            if not layer.curves:
                continue
            elements.append(
                path_element(layer.curves, layer.entry.hex, options.path_type, scale, options.precision)
            )
    else:
        curves = [curve for layer in result.layers for curve in layer.curves]
        elements.append(
            path_element(curves, options.fill_color, options.path_type, scale, options.precision)
        )

    svg_content = '\n'.join(elements)

    svg = f'''<?xml version="1.0" encoding="UTF-8"?>
<svg id="svg" version="1.1" width="{width}" height="{height}" viewBox="0 0 {width} {height}" xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink">
{svg_content}
</svg>'''

    return svg


def save_svg(
    svg_string: str,
    output_path: str
) -> None:
    """
    Save SVG string to file.

    Args:
        svg_string: SVG content
        output_path: Output file path
    """
    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(svg_string)
