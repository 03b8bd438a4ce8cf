"""
Tests for the workspace controller (session-level glue).

### What This Module Tests
1. Session: Variables are fetched by name, re-keyed with the session suffix
   and listed together with their leaves.
2. Workspace -> Hub: Mapped elements, parameters and value sets are staged in
   the caller's transaction, created or updated depending on their origin,
   followed by the map.
3. Hub -> Workspace: Leaf values are collected into their owner, which is put
   once; whole variables are put directly and the session list is refreshed.
   A preview that cannot be computed stops the batch before anything is put.
"""

import numpy as np
import pytest

from conftest import FakeWorkspaceConnector, make_parameter
from workspacehub.controller.array_shape import ArrayShapeError
from workspacehub.controller.mapping_configuration import MappingConfigurationService
from workspacehub.controller.rules.hub_to_workspace import ParameterToVariableMapping, ValueSetValue
from workspacehub.controller.workspace import WorkspaceController
from workspacehub.model.hub import ParameterSwitchKind, ParameterValueSet, ThingTransaction
from workspacehub.model.variables import WorkspaceVariable

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def connector():
    return FakeWorkspaceConnector({"x": 1.0, "m": [[1.0, 2.0], [3.0, 4.0]]})


@pytest.fixture
def controller(connector, hub, store):
    controller = WorkspaceController(connector, MappingConfigurationService(hub, store), suffix="session")
    controller.load_variables(["x", "m"])
    return controller


def manual_row(parameter, variable):
    return ParameterToVariableMapping(
        parameter=parameter,
        selected_value=ValueSetValue(value_set=parameter.value_sets[0], switch_kind=ParameterSwitchKind.MANUAL),
        selected_variable=variable,
    )


# =============================================================================
# 1. Session
# =============================================================================


class TestSession:
    def test_connect_and_disconnect(self, controller, connector):
        controller.connect()
        assert controller.is_session_open and connector.connected

        controller.disconnect()
        assert not controller.is_session_open and not connector.connected

    def test_execute_is_forwarded(self, controller, connector):
        controller.execute("clear all")
        assert connector.commands == ["clear all"]

    def test_variables_and_leaves(self, controller):
        names = [v.name for v in controller.variables]
        assert names == ["x", "m", "m[0,0]", "m[0,1]", "m[1,0]", "m[1,1]"]

    def test_session_suffix(self, controller):
        assert controller.find_variable("x").identifier == "x-session"
        assert controller.find_variable("m[0,1]").identifier == "m[0,1]-session"

    def test_unknown_variable(self, controller):
        assert controller.find_variable("nope") is None


# =============================================================================
# 2. Workspace -> Hub
# =============================================================================


class TestHubTransaction:
    def test_existing_parameter_is_updated(self, controller, satellite, iteration):
        variable = controller.find_variable("x")
        variable.selected_element_definition = satellite
        variable.selected_parameter = satellite.parameters[0]
        result = controller.map_to_hub([variable])
        element = result.elements[0]

        transaction = ThingTransaction()
        controller.populate_hub_transaction(transaction, iteration)

        assert element in transaction.updated
        assert element.parameters[0] in transaction.updated
        assert element.parameters[0].value_sets[0] in transaction.updated
        assert element.parameters[1] not in transaction.things
        assert controller.mapping.store.external_identifier_map in transaction.updated
        assert controller.mapping.store.external_identifier_map in iteration.external_identifier_maps
        assert controller.hub_mapping is None

    def test_new_element_is_created(self, controller, length, iteration):
        variable = controller.find_variable("x")
        variable.selected_parameter_type = length
        result = controller.map_to_hub([variable])
        element = result.elements[0]

        transaction = ThingTransaction()
        controller.populate_hub_transaction(transaction, iteration)

        assert element in transaction.created
        assert element.parameters[0] in transaction.created
        assert all(c in transaction.created for c in controller.mapping.store.external_identifier_map.correspondences)

    def test_nothing_mapped(self, controller, iteration):
        transaction = ThingTransaction()
        controller.populate_hub_transaction(transaction, iteration)
        assert transaction.things == []


# =============================================================================
# 3. Hub -> Workspace
# =============================================================================


class TestTransferToWorkspace:
    def test_invalid_rows_are_left_out(self, controller, satellite):
        rows = controller.map_to_workspace([
            manual_row(satellite.parameters[1], controller.find_variable("m[0,0]")),
            manual_row(satellite.parameters[0], controller.find_variable("x")),
        ])
        assert [row.selected_variable.name for row in rows] == ["x"]

    def test_scalar(self, controller, connector, satellite):
        controller.map_to_workspace([manual_row(satellite.parameters[0], controller.find_variable("x"))])
        controller.transfer_to_workspace()

        assert connector.put == [("x", 12.0)]
        assert controller.find_variable("x").value == 12.0
        assert controller.workspace_mapping == []

    def test_leaves_update_their_owner_once(self, controller, connector, satellite, bus):
        controller.map_to_workspace([
            manual_row(satellite.parameters[0], controller.find_variable("m[0,0]")),
            manual_row(bus.parameters[0], controller.find_variable("m[1,1]")),
        ])
        controller.transfer_to_workspace()

        assert len(connector.put) == 1
        name, value = connector.put[0]
        assert name == "m"
        np.testing.assert_array_equal(value, [[12.0, 2.0], [3.0, 3.0]])

    def test_whole_array_refreshes_leaves(self, controller, connector, satellite):
        controller.map_to_workspace([manual_row(satellite.parameters[1], controller.find_variable("m"))])
        controller.transfer_to_workspace()

        name, value = connector.put[0]
        assert name == "m"
        assert value.shape == (3, 2)
        assert len(controller.variables) == 8
        assert controller.find_variable("m[2,1]").value == 6.0

    def test_correspondences_are_recorded(self, controller, satellite):
        controller.map_to_workspace([manual_row(satellite.parameters[0], controller.find_variable("x"))])
        controller.transfer_to_workspace()

        store = controller.mapping.store
        assert [c.internal_id for c in store.correspondences_for("x-session")] == [satellite.parameters[0].iid]

    def test_empty_value_is_skipped(self, controller, connector, satellite):
        row = manual_row(satellite.parameters[0], controller.find_variable("x"))
        row.selected_value = ValueSetValue(value_set=ParameterValueSet())
        controller.map_to_workspace([row])
        controller.transfer_to_workspace()

        assert connector.put == []

    def test_unconvertible_preview_puts_nothing(self, controller, connector, satellite, matrix_type):
        short = make_parameter(matrix_type, satellite, manual=["1", "2"], value_switch=ParameterSwitchKind.MANUAL)
        controller.map_to_workspace([
            manual_row(satellite.parameters[0], controller.find_variable("x")),
            manual_row(short, controller.find_variable("m")),
        ])

        with pytest.raises(ArrayShapeError):
            controller.transfer_to_workspace()

        assert connector.put == []
        assert controller.find_variable("x").value == 1.0
        assert controller.mapping.store.correspondences == []
