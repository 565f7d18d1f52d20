"""Owner console client helpers."""

from .access_gate import AccessGate, AddressBar, GateDecision, GateState, PlanFlags, decide, is_open

__all__ = ['AccessGate', 'AddressBar', 'GateDecision', 'GateState', 'PlanFlags', 'decide', 'is_open']
