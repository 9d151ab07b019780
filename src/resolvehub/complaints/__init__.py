"""
Complaints Module
=================

Bounded Context for complaint routing, SLA tracking and escalation.

Responsibilities:
- Route complaint categories to municipal departments
- Bind eligible staff to complaints within a department/city scope
- Compute SLA deadlines and overdue facts
- Escalate overdue complaints one tier at a time
- Run the periodic sweep over all open complaints
- Expose the SLA/escalation read model over HTTP
"""

__version__ = "1.0.0"
