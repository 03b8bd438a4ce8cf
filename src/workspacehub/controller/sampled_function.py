"""
Sampled-Function Adapter
========================
Maps a 2-D workspace array onto a SampledFunctionParameterType, i.e. an
ordered list of independent axes followed by an ordered list of dependent axes.

Why is this file needed?
------------------------
1. Layout: Each declared axis is one row or one column of the workspace array
   (RowOrColumn). An explicit list of AxisAssignments says which row/column
   feeds which axis.
2. Value sets: The hub stores a sampled function as one flat list, one value
   per axis for every sample, independent axes first.
3. Time tagging: One assignment may be flagged as the time axis. Samples can
   then be thinned (nearest sample per time bucket) or averaged per bucket.

Note: This module is pure NumPy and holds no state.
"""
from __future__ import annotations

import logging
from typing import Iterator, List, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from workspacehub.controller.array_shape import ArrayShapeError
from workspacehub.model.hub import (
    ParameterValueSet, QuantityKind, SampledFunctionParameterType
)
from workspacehub.model.variables import AxisAssignment, AxisRole, RowOrColumn, TimeTaggedValue
from workspacehub.utils import format_invariant, parse_decimal

logger = logging.getLogger(__name__)

# Guards floor(t / step) against representation error (0.3 / 0.1 = 2.999...)
_BUCKET_EPSILON = 1e-9


def ordered(assignments: Sequence[AxisAssignment]) -> List[AxisAssignment]:
    """Independent assignments first, then dependent ones; stable within a role."""
    result = [a for a in assignments if a.role == AxisRole.INDEPENDENT]
    result += [a for a in assignments if a.role == AxisRole.DEPENDENT]
    return result


def _axis_length(value: np.ndarray, orientation: RowOrColumn) -> int:
    """Number of rows/columns available as axes."""
    return value.shape[1] if orientation == RowOrColumn.COLUMN else value.shape[0]


def _slice(value: np.ndarray, orientation: RowOrColumn, position: int) -> np.ndarray:
    if orientation == RowOrColumn.COLUMN:
        return value[:, position]
    return value[position, :]


def validate(
    parameter_type: SampledFunctionParameterType,
    value: np.ndarray,
    orientation: RowOrColumn,
    assignments: Sequence[AxisAssignment],
) -> bool:
    """
    Verify that the assignments describe a valid mapping of 'value'.
    Any mismatch invalidates the whole mapping.
    """
    if not isinstance(value, np.ndarray) or value.ndim != 2:
        return False

    independents = [a for a in assignments if a.role == AxisRole.INDEPENDENT]
    dependents = [a for a in assignments if a.role == AxisRole.DEPENDENT]

    if len(independents) != len(parameter_type.independent_parameter_types):
        return False
    if len(dependents) != len(parameter_type.dependent_parameter_types):
        return False
    if sum(1 for a in assignments if a.is_time_tagged) > 1:
        return False

    try:
        positions = [a.position for a in assignments]
    except ValueError:
        return False

    if len(set(positions)) != len(positions):
        return False

    pairs = list(zip(independents, parameter_type.independent_parameter_types))
    pairs += list(zip(dependents, parameter_type.dependent_parameter_types))

    for assignment, declared in pairs:
        if not 0 <= assignment.position < _axis_length(value, orientation):
            return False

        if declared.measurement_scale is None or not isinstance(declared.parameter_type, QuantityKind):
            return False

        if orientation == RowOrColumn.COLUMN:
            sample = value[0, assignment.position]
        else:
            sample = value[assignment.position, 0]

        if not declared.parameter_type.validate(sample, declared.measurement_scale):
            logger.debug(f"Axis '{declared.parameter_type.name}' refused sample {sample!r}")
            return False

    return True


def decompose(
    value: np.ndarray,
    orientation: RowOrColumn,
    assignments: Sequence[AxisAssignment],
) -> List[Tuple[AxisRole, np.ndarray]]:
    """Extract the full row/column of every assignment, in assignment order."""
    array = np.asarray(value)
    return [(a.role, _slice(array, orientation, a.position).copy()) for a in assignments]


def resample(
    time_values: Sequence[float],
    dependent_values: Sequence[Sequence[float]],
    is_averaged: bool,
    step: float,
) -> Iterator[TimeTaggedValue]:
    """
    Pair dependent samples with their time, optionally thinned by 'step'.

    Args:
        time_values: Time axis samples, ascending.
        dependent_values: One sequence per non-time axis, aligned with time_values.
        is_averaged: Average each time bucket instead of picking its nearest sample.
        step: Bucket width; 0 keeps every sample.

    Returns:
        A fresh iterator. Nothing is computed until it is consumed, and the
        inputs are never modified.
    """
    if step < 0:
        raise ValueError(f"Time step must be positive or zero, got {step}")

    return _iterate_time_tagged(time_values, dependent_values, bool(is_averaged), float(step))


def _iterate_time_tagged(time_values, dependent_values, is_averaged: bool, step: float) -> Iterator[TimeTaggedValue]:
    times = np.asarray(time_values, dtype=np.float64).ravel()

    if len(dependent_values) == 0:
        dependents = np.empty((0, times.shape[0]), dtype=np.float64)
    else:
        dependents = np.asarray(dependent_values, dtype=np.float64)
        if dependents.ndim == 1:
            dependents = dependents.reshape(1, -1)

    if dependents.shape[1] != times.shape[0]:
        raise ValueError(
            f"Time axis has {times.shape[0]} samples but dependent axes have {dependents.shape[1]}"
        )

    if step == 0:
        for sample_index, time in enumerate(times):
            yield TimeTaggedValue(float(time), tuple(float(v) for v in dependents[:, sample_index]))
        return

    buckets = np.floor(times / step + _BUCKET_EPSILON).astype(np.int64)

    if is_averaged:
        for bucket in np.unique(buckets):
            mask = buckets == bucket
            means = tuple(float(dependents[axis, mask].mean()) for axis in range(dependents.shape[0]))
            yield TimeTaggedValue(float(bucket * step), means)
        return

    emitted = set()
    for bucket in np.unique(buckets):
        boundary = bucket * step
        nearest = int(np.argmin(np.abs(times - boundary)))
        if nearest in emitted:
            continue
        emitted.add(nearest)
        yield TimeTaggedValue(float(times[nearest]), tuple(float(v) for v in dependents[:, nearest]))


def to_value_array(
    value: np.ndarray,
    orientation: RowOrColumn,
    assignments: Sequence[AxisAssignment],
) -> List[str]:
    """One value per axis for each sample, independent axes first."""
    array = np.asarray(value)
    axes = [values for _, values in decompose(array, orientation, ordered(assignments))]

    result = []
    sample_count = array.shape[0] if orientation == RowOrColumn.COLUMN else array.shape[1]
    for sample_index in range(sample_count):
        for values in axes:
            result.append(format_invariant(values[sample_index]))

    return result


def time_tagged_value_array(time_tagged_values: Iterator[TimeTaggedValue], time_index: int) -> List[str]:
    """Flatten resampled rows, putting the time at position 'time_index' of each sample."""
    result = []
    for row in time_tagged_values:
        sample = list(row.values)
        sample.insert(time_index, row.time)
        result.extend(format_invariant(v) for v in sample)

    return result


def compute_array(
    parameter_type: SampledFunctionParameterType,
    value_set: ParameterValueSet,
    orientation: RowOrColumn,
    assignments: Sequence[AxisAssignment],
) -> npt.NDArray[np.float64]:
    """
    Rebuild a workspace array from a sampled-function value set.
    Unparsable values give an all-zero array of the target shape.
    """
    axis_count = parameter_type.number_of_values
    values = value_set.actual_value

    if axis_count == 0 or len(values) % axis_count != 0:
        raise ArrayShapeError(
            f"Value set holds {len(values)} values, not a multiple of the "
            f"{axis_count} axes of '{parameter_type.name}'."
        )

    positions = [a.position for a in ordered(assignments)] or list(range(axis_count))
    if len(positions) != axis_count:
        raise ArrayShapeError(
            f"{len(positions)} axis assignments given for {axis_count} axes of '{parameter_type.name}'."
        )

    sample_count = len(values) // axis_count
    extent = max(positions) + 1
    shape = (sample_count, extent) if orientation == RowOrColumn.COLUMN else (extent, sample_count)
    array = np.zeros(shape, dtype=np.float64)

    for sample_index in range(sample_count):
        for axis_index, position in enumerate(positions):
            text = values[sample_index * axis_count + axis_index]
            try:
                number = parse_decimal(text)
            except ValueError:
                logger.warning(f"Could not parse '{text}' in '{parameter_type.name}'; falling back to zeros.")
                return np.zeros(shape, dtype=np.float64)

            if orientation == RowOrColumn.COLUMN:
                array[sample_index, position] = number
            else:
                array[position, sample_index] = number

    return array
