"""Abstract base class for all pipeline stage agents."""

from abc import ABC, abstractmethod
from typing import Any, Dict


class BaseAgent(ABC):
    """
    Abstract base class that all stage agents must inherit from.

    Agents are the execution units of a pipeline. Each agent receives the
    accumulated context, does one stage of work, and returns the keys it
    contributes to the context.
    """

    def __init__(self, name: str) -> None:
        """
        Initialize the agent.

        Args:
            name: Stage identifier used in logs and error messages.
        """
        self.name = name

    def is_enabled(self, context: Dict[str, Any]) -> bool:
        """Whether this stage runs for the given context. Optional stages override."""
        return True

    @abstractmethod
    def run(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute the agent's stage.

        Args:
            input_data: Accumulated pipeline context.

        Returns:
            Dictionary of keys to merge into the context.
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
