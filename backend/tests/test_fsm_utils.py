from luminila.utils.fsm import TransitionValidator
from luminila.routes.purchase_orders import PO_FSM
from luminila.routes.returns import RETURN_FSM
from werkzeug.exceptions import BadRequest
import pytest


def test_transition_validator_allows_valid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    assert fsm.assert_can_transition('A', 'B') is True


def test_transition_validator_blocks_invalid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    with pytest.raises(BadRequest) as exc:
        fsm.assert_can_transition('A', 'C')
    assert exc.value.description == 'Invalid status transition A -> C'


def test_terminal_states():
    assert PO_FSM.is_terminal('CLOSED')
    assert PO_FSM.is_terminal('CANCELLED')
    assert not PO_FSM.is_terminal('ORDERED')
    assert RETURN_FSM.is_terminal('REJECTED')
    # unknown states have no way out
    assert RETURN_FSM.is_terminal('LOST')


def test_custom_field_name_in_message():
    fsm = TransitionValidator({'open': {'closed'}}, field_name='state')
    with pytest.raises(BadRequest) as exc:
        fsm.assert_can_transition('closed', 'open')
    assert exc.value.description == 'Invalid state transition closed -> open'
