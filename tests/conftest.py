"""
Shared fixtures for the workspacehub test-suite.

### What Lives Here
1. FakeHub: An in-memory HubConnector built on `Iteration.find`. Every
   `write` call is recorded.
2. FakeWorkspaceConnector: An in-memory WorkspaceConnector over a dict of
   values. Every `put_variable` call is recorded.
3. A small hub model: one 'Satellite' element with a scalar and a 3x2 array
   parameter, a 'Bus' element used through an ElementUsage, one option, one
   state, and a time/length sampled-function type.
"""

import numpy as np
import pytest

from workspacehub.controller.correspondence import CorrespondenceStore
from workspacehub.model.hub import (
    ActualFiniteState, ArrayParameterType, DependentParameterTypeAssignment, DomainOfExpertise,
    ElementDefinition, ElementUsage, IndependentParameterTypeAssignment, Iteration, MeasurementScale,
    Option, Parameter, ParameterOverride, ParameterSwitchKind, ParameterTypeComponent, ParameterValueSet,
    QuantityKind, SampledFunctionParameterType, TextParameterType
)
from workspacehub.model.variables import WorkspaceVariable

# =============================================================================
# Fakes
# =============================================================================


class FakeHub:
    """In-memory hub session: identity lookup over one open iteration."""

    def __init__(self, iteration, domain):
        self.open_iteration = iteration
        self.current_domain_of_expertise = domain
        self.written = []

    def get_thing_by_id(self, iid, container=None):
        root = container if container is not None else self.open_iteration
        if not isinstance(root, Iteration):
            return None
        return root.find(iid)

    def write(self, transaction):
        self.written.append(transaction)


class FakeWorkspaceConnector:
    """In-memory workspace: values by name, puts recorded as (name, value copy)."""

    def __init__(self, values):
        self.values = dict(values)
        self.put = []
        self.commands = []
        self.connected = False

    def connect(self):
        self.connected = True

    def disconnect(self):
        self.connected = False

    def get_variable(self, name):
        return WorkspaceVariable(name, self.values[name])

    def put_variable(self, variable):
        value = variable.value.copy() if isinstance(variable.value, np.ndarray) else variable.value
        self.put.append((variable.name, value))
        self.values[variable.name] = value

    def execute(self, command):
        self.commands.append(command)
        return ""


# =============================================================================
# Helpers
# =============================================================================


def make_parameter(parameter_type, container, scale=None, owner=None, **values):
    """Attach a parameter with a single value set to 'container'."""
    parameter = Parameter(parameter_type=parameter_type, scale=scale, owner=owner, container=container)
    value_set = ParameterValueSet(container=parameter, **values)
    parameter.value_sets.append(value_set)
    container.parameters.append(parameter)
    return parameter


# =============================================================================
# Fixtures: types
# =============================================================================


@pytest.fixture
def domain():
    return DomainOfExpertise(name="System Engineering", short_name="SYS")


@pytest.fixture
def metre():
    return MeasurementScale(name="metre", short_name="m")


@pytest.fixture
def second():
    return MeasurementScale(name="second", short_name="s")


@pytest.fixture
def length(metre):
    return QuantityKind(name="length", short_name="l", default_scale=metre, possible_scales=[metre])


@pytest.fixture
def duration(second):
    return QuantityKind(name="time", short_name="t", default_scale=second, possible_scales=[second])


@pytest.fixture
def text_type():
    return TextParameterType(name="label", short_name="label")


@pytest.fixture
def matrix_type(length, metre):
    """3x2 array of lengths."""
    return ArrayParameterType(
        name="matrix",
        short_name="matrix",
        dimension=[3, 2],
        components=[ParameterTypeComponent(parameter_type=length, scale=metre) for _ in range(6)],
    )


@pytest.fixture
def timeline_type(duration, length, second, metre):
    """One independent time axis, one dependent length axis."""
    return SampledFunctionParameterType(
        name="timeline",
        short_name="timeline",
        independent_parameter_types=[
            IndependentParameterTypeAssignment(parameter_type=duration, measurement_scale=second)
        ],
        dependent_parameter_types=[
            DependentParameterTypeAssignment(parameter_type=length, measurement_scale=metre)
        ],
    )


# =============================================================================
# Fixtures: model
# =============================================================================


@pytest.fixture
def option():
    return Option(name="Option 1", short_name="opt1")


@pytest.fixture
def state():
    return ActualFiniteState(name="On", short_name="on")


@pytest.fixture
def iteration(domain, length, metre, matrix_type, option, state):
    """
    Satellite: 'length' parameter (manual ["12"]) and 'matrix' parameter
    (manual ["1".."6"]). Bus: 'length' parameter, overridden by the
    'bus' usage inside Satellite.
    """
    iteration = Iteration(options=[option], actual_finite_states=[state])

    satellite = ElementDefinition(name="Satellite", short_name="sat", owner=domain, container=iteration)
    make_parameter(length, satellite, scale=metre, owner=domain, manual=["12"], computed=["0"])
    make_parameter(
        matrix_type, satellite, scale=metre, owner=domain,
        manual=[str(v) for v in range(1, 7)], value_switch=ParameterSwitchKind.MANUAL,
    )

    bus = ElementDefinition(name="Bus", short_name="bus", owner=domain, container=iteration)
    bus_length = make_parameter(length, bus, scale=metre, owner=domain, manual=["3"])

    usage = ElementUsage(name="bus", short_name="bus", element_definition=bus, container=satellite)
    override = ParameterOverride(parameter=bus_length, container=usage)
    override.value_sets.append(ParameterValueSet(container=override, manual=["3"]))
    usage.parameter_overrides.append(override)
    satellite.contained_elements.append(usage)

    iteration.elements.extend([satellite, bus])
    return iteration


@pytest.fixture
def satellite(iteration):
    return iteration.elements[0]


@pytest.fixture
def bus(iteration):
    return iteration.elements[1]


@pytest.fixture
def hub(iteration, domain):
    return FakeHub(iteration, domain)


@pytest.fixture
def store(hub):
    """A store with an empty, not yet persisted map selected."""
    store = CorrespondenceStore(hub)
    store.external_identifier_map = store.create_external_identifier_map("session")
    return store


@pytest.fixture
def timeline_array():
    """2x9 array: row 0 holds lengths, row 1 holds times 0..8."""
    return np.array([
        [10.0, 11.0, 12.0, 13.0, 14.0, 15.0, 16.0, 17.0, 18.0],
        [0.0, 1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0],
    ])
