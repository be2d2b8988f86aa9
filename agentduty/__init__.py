"""AgentDuty - notifications between AI agents and humans."""

__version__ = "0.3.0"
