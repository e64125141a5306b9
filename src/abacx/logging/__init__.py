from .decision_logger import DecisionLogger, redact

__all__ = ["DecisionLogger", "redact"]
