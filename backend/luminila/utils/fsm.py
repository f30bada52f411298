"""Allowed status transitions for lifecycle documents.

    PO_FSM = TransitionValidator({
        'DRAFT': {'ORDERED', 'CANCELLED'},
        'ORDERED': {'RECEIVED', 'CANCELLED'},
        'RECEIVED': {'CLOSED'},
    })
    PO_FSM.assert_can_transition(po.status, 'RECEIVED')   # 400 when not allowed
"""
from __future__ import annotations
from typing import Dict, Iterable, Set
from flask import abort


class TransitionValidator:
    def __init__(self, graph: Dict[str, Iterable[str]], field_name: str = 'status'):
        self.graph: Dict[str, Set[str]] = {k: set(v) for k, v in graph.items()}
        self.field_name = field_name

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def is_terminal(self, status: str) -> bool:
        return not self.graph.get(status)

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            abort(400, description=f"Invalid {self.field_name} transition {current} -> {target}")
        return True


__all__ = ['TransitionValidator']
