"""
Engine Configuration
====================

Declarative tables driving the engine, loaded from YAML:

    departments:   category -> department routing
    sla:           resolution hours by category and priority
    escalation:    warning/critical/final thresholds and authority targets
    scoring:       base points, speed bonus, breach penalty and badges

Every section is optional; missing sections fall back to the defaults
defined on each model.
"""

from pydantic import BaseModel, Field

from resolvehub.complaints.domain.value_objects import (
    DepartmentConfig, SLAConfig, EscalationConfig
)
from resolvehub.gamification.domain.value_objects import ScoringConfig


class EngineConfig(BaseModel):
    """Root of the engine configuration file."""
    departments: DepartmentConfig = Field(default_factory=DepartmentConfig)
    sla: SLAConfig = Field(default_factory=SLAConfig)
    escalation: EscalationConfig = Field(default_factory=EscalationConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
