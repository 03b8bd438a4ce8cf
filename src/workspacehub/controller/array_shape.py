"""
Array Shape Adapter
===================
Reshapes a hub value set (flat, ordered strings) into a 2-D workspace array
and back, and checks a workspace array against an ArrayParameterType.

Why is this file needed?
------------------------
1. Index arithmetic: The hub stores an array parameter as one flat list,
   walked row-major (dimension 0 is the outer axis).
2. Fail-to-neutral: A value set that holds an unparsable number produces an
   all-zero array of the right shape, never a partially filled one.
3. Fail-fast on shape: A value set whose length disagrees with the declared
   dimensions is rejected with ArrayShapeError instead of being padded.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional

import numpy as np
import numpy.typing as npt

from workspacehub.model.hub import (
    ArrayParameterType, MeasurementScale, ParameterValueSet, QuantityKind
)
from workspacehub.utils import format_invariant, parse_decimal

logger = logging.getLogger(__name__)


class ArrayShapeError(ValueError):
    """A value set does not hold exactly the number of values a shape needs."""


def _shape_of(array_type: ArrayParameterType) -> tuple[int, int]:
    if array_type.rank == 1:
        return 1, array_type.dimension[0]
    if array_type.rank != 2:
        raise ArrayShapeError(
            f"Array type '{array_type.name}' has rank {array_type.rank}; only 1-D and 2-D are supported."
        )
    return array_type.dimension[0], array_type.dimension[1]


def validate(array_type: ArrayParameterType, value: Any, scale: Optional[MeasurementScale] = None) -> bool:
    """
    Verify that a workspace value fits the declared array type.
    A mismatch is a refusal (False), never an exception.
    """
    if not isinstance(value, np.ndarray):
        return False

    if value.ndim != array_type.rank:
        logger.debug(f"Rank mismatch for '{array_type.name}': {value.ndim} != {array_type.rank}")
        return False

    if not array_type.has_single_component_type:
        return False

    component = array_type.components[0]
    if not isinstance(component.parameter_type, QuantityKind):
        return False

    for axis, length in enumerate(array_type.dimension):
        if value.shape[axis] != length:
            logger.debug(f"Axis {axis} of '{array_type.name}' expects {length}, got {value.shape[axis]}")
            return False

    scale = scale or component.scale
    first = value[(0,) * value.ndim]
    return component.parameter_type.validate(first, scale)


def linearize(array_type: ArrayParameterType, value_set: ParameterValueSet) -> npt.NDArray[np.object_]:
    """
    Fill the declared shape row-major with the value set's actual values.
    """
    rows, columns = _shape_of(array_type)
    values = value_set.actual_value

    if len(values) != rows * columns:
        raise ArrayShapeError(
            f"Value set holds {len(values)} values but '{array_type.name}' "
            f"declares {rows}x{columns} = {rows * columns}."
        )

    array = np.empty((rows, columns), dtype=object)
    value_index = 0
    for row_index in range(rows):
        for column_index in range(columns):
            array[row_index, column_index] = values[value_index]
            value_index += 1

    return array


def to_numeric(array_type: ArrayParameterType, value_set: ParameterValueSet) -> npt.NDArray[np.float64]:
    """
    Linearize, then parse every cell as an invariant decimal.
    Any unparsable cell gives a zero-filled array of the declared shape.
    """
    text_array = linearize(array_type, value_set)
    numeric = np.zeros(text_array.shape, dtype=np.float64)

    for (row_index, column_index), text in np.ndenumerate(text_array):
        try:
            numeric[row_index, column_index] = parse_decimal(text)
        except ValueError:
            logger.warning(
                f"Could not parse '{text}' at ({row_index},{column_index}) of '{array_type.name}'; "
                f"falling back to zeros."
            )
            return np.zeros(text_array.shape, dtype=np.float64)

    return numeric


def flatten(value: Any) -> List[str]:
    """Row-major, invariant-formatted value array for a 2-D workspace value."""
    array = np.asarray(value)
    if array.ndim == 1:
        array = array.reshape(1, -1)
    return [format_invariant(cell) for cell in array.ravel(order="C")]
