"""
Tests for the hub data model.

### What This Module Tests
1. Parameter types: Each type accepts only what it can store, and quantity
   kinds check the scale against their allowed scales.
2. Value sets: The switch selects the array, and option/state lookup falls
   back to the first value set.
3. Cloning and lookup: Clones remember their source and never share value
   lists; `Iteration.find` reaches every nested thing.
4. Transactions: A thing is staged for update at most once.
"""

import uuid

import pytest

from workspacehub.model.hub import (
    BooleanParameterType, ElementDefinition, MeasurementScale, Option, Parameter,
    ParameterSwitchKind, ParameterValueSet, ThingTransaction
)

# =============================================================================
# 1. Parameter types
# =============================================================================


class TestParameterTypes:
    @pytest.mark.parametrize("value, expected", [
        (1.5, True),
        ("2.5", True),
        (3, True),
        (True, False),
        ("abc", False),
        ("1,5", False),
        ("nan", False),
        ("1_000", False),
    ])
    def test_quantity_kind(self, length, value, expected):
        assert length.validate(value) is expected

    def test_quantity_kind_scale(self, length, metre):
        foot = MeasurementScale(name="foot", short_name="ft")

        assert length.validate(1.0, metre)
        assert not length.validate(1.0, foot)

    def test_text(self, text_type):
        assert text_type.validate("hello")
        assert not text_type.validate(1.0)

    @pytest.mark.parametrize("value, expected", [
        (True, True),
        ("false", True),
        (" TRUE ", True),
        ("yes", False),
        (1, False),
    ])
    def test_boolean(self, value, expected):
        assert BooleanParameterType(name="flag").validate(value) is expected

    def test_array_shape_properties(self, matrix_type):
        assert matrix_type.rank == 2
        assert matrix_type.number_of_values == 6
        assert matrix_type.has_single_component_type

    def test_sampled_function_properties(self, timeline_type):
        assert timeline_type.number_of_values == 2
        assert timeline_type.parameters_name == ["time", "length"]


# =============================================================================
# 2. Value sets
# =============================================================================


class TestValueSets:
    def test_switch_selects_array(self):
        value_set = ParameterValueSet(computed=["1"], manual=["2"], reference=["3"])

        assert value_set.actual_value == ["2"]
        value_set.value_switch = ParameterSwitchKind.COMPUTED
        assert value_set.actual_value == ["1"]
        assert value_set.values_for(ParameterSwitchKind.REFERENCE) == ["3"]

    def test_option_dependent_lookup(self, length, option):
        other = Option(name="Option 2")
        parameter = Parameter(parameter_type=length, is_option_dependent=True)
        first = ParameterValueSet(actual_option=option, manual=["1"])
        second = ParameterValueSet(actual_option=other, manual=["2"])
        parameter.value_sets.extend([first, second])

        assert parameter.query_value_set(other) is second
        assert parameter.query_value_set(option) is first

    def test_independent_parameter_ignores_option(self, satellite, option):
        parameter = satellite.parameters[0]
        assert parameter.query_value_set(option) is parameter.value_sets[0]

    def test_no_match_falls_back_to_first(self, length, option):
        parameter = Parameter(parameter_type=length, is_option_dependent=True)
        parameter.value_sets.append(ParameterValueSet(actual_option=Option(name="other")))

        assert parameter.query_value_set(option) is parameter.value_sets[0]

    def test_no_value_set(self, length):
        with pytest.raises(ValueError, match="no value set"):
            Parameter(parameter_type=length).query_value_set()


# =============================================================================
# 3. Cloning and lookup
# =============================================================================


class TestCloneAndFind:
    def test_element_clone(self, satellite):
        copied = satellite.clone()
        parameter = copied.parameters[0]

        assert copied.original is satellite
        assert copied.iid == satellite.iid
        assert parameter.container is copied
        assert parameter.original is satellite.parameters[0]
        assert parameter.value_sets[0].container is parameter

        parameter.value_sets[0].manual.append("99")
        assert satellite.parameters[0].value_sets[0].manual == ["12"]

    def test_usage_clone(self, satellite):
        usage = satellite.contained_elements[0]
        copied = usage.clone()

        assert copied.parameter_overrides[0] is not usage.parameter_overrides[0]
        assert copied.parameter_overrides[0].container is copied

    def test_find_nested(self, iteration, satellite, option, state):
        override = satellite.contained_elements[0].parameter_overrides[0]

        assert iteration.find(override.iid) is override
        assert iteration.find(override.value_sets[0].iid) is override.value_sets[0]
        assert iteration.find(option.iid) is option
        assert iteration.find(state.iid) is state
        assert iteration.find(uuid.uuid4()) is None
        assert iteration.find(None) is None

    def test_container_of_type(self, satellite):
        value_set = satellite.parameters[0].value_sets[0]
        assert value_set.get_container_of_type(ElementDefinition) is satellite
        assert satellite.get_container_of_type(ElementDefinition) is None


# =============================================================================
# 4. Transactions
# =============================================================================


class TestThingTransaction:
    def test_update_is_staged_once(self, satellite):
        transaction = ThingTransaction()
        transaction.create_or_update(satellite)
        transaction.create_or_update(satellite)

        assert transaction.updated == [satellite]

    def test_things_lists_both(self, satellite, bus):
        transaction = ThingTransaction()
        transaction.create(bus)
        transaction.create_or_update(satellite)

        assert transaction.things == [bus, satellite]
