"""Grid geometry and FFmpeg filter graphs for the composite view."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True, slots=True)
class Canvas:
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class GridGeometry:
    columns: int
    rows: int
    cell_width: int
    cell_height: int

    @property
    def cells(self) -> int:
        return self.columns * self.rows


def grid_geometry(count: int, canvas: Canvas) -> GridGeometry:
    """Return the grid used to lay out ``count`` video inputs on ``canvas``.

    Cell sizes are floored, so up to ``columns - 1`` / ``rows - 1`` pixels of the
    canvas may stay unused.
    """

    if count <= 1:
        return GridGeometry(1, 1, canvas.width, canvas.height)
    columns = math.ceil(math.sqrt(count))
    rows = math.ceil(count / columns)
    return GridGeometry(
        columns=columns,
        rows=rows,
        cell_width=canvas.width // columns,
        cell_height=canvas.height // rows,
    )


def _fit(width: int, height: int) -> str:
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:color=black"
    )


def build_filter_complex(count: int, canvas: Canvas, fps: int) -> str:
    """Return the ``-filter_complex`` expression tiling ``count`` inputs into ``[v]``.

    Inputs ``0..count-1`` are expected to be the video inputs. The result is a
    pure function of its arguments.
    """

    if count < 1:
        raise ValueError("At least one video input is required")

    filters: List[str] = [f"[{index}:v]fps={fps}[vfps{index}]" for index in range(count)]

    if count == 1:
        filters.append(f"[vfps0]{_fit(canvas.width, canvas.height)}[v]")
        return ";".join(filters)

    geometry = grid_geometry(count, canvas)
    for index in range(count):
        filters.append(f"[vfps{index}]{_fit(geometry.cell_width, geometry.cell_height)}[v{index}]")

    row_width = geometry.cell_width * geometry.columns
    row_labels: List[str] = []
    for row in range(geometry.rows):
        row_inputs = [
            f"[v{index}]"
            for index in range(row * geometry.columns, min((row + 1) * geometry.columns, count))
        ]
        if not row_inputs:
            continue
        # vstack rejects rows of unequal width, so a short row is padded to the full
        # canvas width even when it holds a single tile; a bare label would not fit.
        short = len(row_inputs) < geometry.columns
        pad = f"pad={row_width}:{geometry.cell_height}:0:0:color=black"
        if len(row_inputs) == 1:
            if short:
                filters.append(f"{row_inputs[0]}{pad}[r{row}]")
                row_labels.append(f"[r{row}]")
            else:
                row_labels.append(row_inputs[0])
            continue
        stage = f"{''.join(row_inputs)}hstack=inputs={len(row_inputs)}"
        if short:
            stage += f",{pad}"
        filters.append(f"{stage}[r{row}]")
        row_labels.append(f"[r{row}]")

    if len(row_labels) == 1:
        filters.append(f"{row_labels[0]}copy[v]")
    else:
        filters.append(f"{''.join(row_labels)}vstack=inputs={len(row_labels)}[v]")
    return ";".join(filters)


def build_audio_mix(first_input: int, count: int, *, delay_ms: int = 0) -> str:
    """Return the filter stage mixing ``count`` audio inputs into ``[a]``."""

    if count < 1:
        raise ValueError("At least one audio input is required")
    labels = "".join(f"[{first_input + offset}:a]" for offset in range(count))
    stage = f"{labels}amix=inputs={count}:duration=longest:dropout_transition=2"
    if delay_ms > 0:
        stage += f",adelay={delay_ms}:all=true"
    return f"{stage}[a]"


__all__ = [
    "Canvas",
    "GridGeometry",
    "build_audio_mix",
    "build_filter_complex",
    "grid_geometry",
]
