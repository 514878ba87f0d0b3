"""
Applying transformations to source text.
"""

from __future__ import annotations

from collections.abc import Sequence

from .types import Transformation


def apply_transformations(transformations: Sequence[Transformation], source_code: str) -> str:
    """
    Replace the spans of the given transformations in the source text.

    Text outside the spans is kept byte for byte. With no transformations the
    source is returned unchanged.

    Args:
        transformations: Rewrites sorted by start offset, spans not overlapping
        source_code: The text the spans refer to

    Returns:
        The rewritten text

    Raises:
        ValueError: If the spans are unsorted, overlapping, out of bounds, or
            do not contain their original_value
    """
    if not transformations:
        return source_code

    pieces: list[str] = []
    position = 0

    for transformation in transformations:
        start = transformation.start.offset
        end = transformation.end.offset

        if start < position:
            raise ValueError(
                f"Transformation at offset {start} overlaps or precedes the previous one "
                f"(which ends at offset {position})"
            )
        if end < start or end > len(source_code):
            raise ValueError(f"Transformation span [{start}, {end}) is out of bounds")
        if source_code[start:end] != transformation.original_value:
            raise ValueError(
                f"Transformation span [{start}, {end}) holds {source_code[start:end]!r}, "
                f"expected {transformation.original_value!r}"
            )

        pieces.append(source_code[position:start])
        pieces.append(transformation.new_value)
        position = end

    pieces.append(source_code[position:])
    return "".join(pieces)
