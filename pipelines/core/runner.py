"""Sequential pipeline execution engine."""

from typing import Any, Dict, List, Optional

from core.errors import BackupError
from core.logger import get_logger
from pipelines.core.base_agent import BaseAgent

logger = get_logger(__name__)


class PipelineRunner:
    """
    Sequential pipeline executor.

    Executes agents in order, passing a context dict between them.
    Architecture: Input → Stage1 → Stage2 → ... → Output

    The run is terminal on the first failure. Expected failures
    (BackupError) propagate unchanged so callers can act on their type;
    anything else is wrapped in RuntimeError naming the failed stage.
    """

    def __init__(
        self,
        agents: List[BaseAgent],
        name: Optional[str] = None,
    ) -> None:
        """
        Initialize the pipeline runner.

        Args:
            agents: Ordered list of agents to execute sequentially.
            name: Optional pipeline name for logging.

        Raises:
            ValueError: If agents list is empty.
        """
        if not agents:
            raise ValueError("Pipeline must contain at least one agent")
        self.agents = agents
        self.name = name or "Pipeline"

    def run(self, initial_context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute pipeline sequentially.

        Each agent receives the accumulated context from previous agents.
        Agent output is merged into the context for the next agent. The
        name of the stage being executed is kept in context["stage"].

        Args:
            initial_context: Initial input data dict. Mutated in place so the
                caller can inspect how far a failed run got.

        Returns:
            Final context dict after all agents have executed.

        Raises:
            BackupError: Re-raised unchanged from the failing stage.
            TypeError: If an agent returns non-dict output.
            RuntimeError: If a stage fails with an unexpected exception.
        """
        context = initial_context
        total_agents = len(self.agents)

        logger.info(f"Pipeline {self.name} started with {total_agents} stage(s)")

        for idx, agent in enumerate(self.agents, start=1):
            agent_name = getattr(agent, "name", agent.__class__.__name__)

            if not agent.is_enabled(context):
                logger.info(f"Stage {idx}/{total_agents} skipped: {agent_name}")
                continue

            context["stage"] = agent_name
            logger.info(f"Stage {idx}/{total_agents} started: {agent_name}")

            try:
                result = agent.run(context)
            except BackupError as e:
                logger.error(f"Stage '{agent_name}' failed: {e}")
                raise
            except Exception as e:
                logger.exception(f"Stage '{agent_name}' failed with unexpected error: {e}")
                raise RuntimeError(
                    f"Pipeline stopped at stage '{agent_name}': {e}"
                ) from e

            if not isinstance(result, dict):
                raise TypeError(
                    f"Agent '{agent_name}' returned {type(result).__name__}, expected dict"
                )

            context.update(result)
            logger.debug(f"Stage '{agent_name}' completed")

        context["stage"] = "DONE"
        logger.info(f"Pipeline {self.name} completed successfully")
        return context

    def __repr__(self) -> str:
        """Return string representation of pipeline."""
        agent_names = [getattr(a, "name", a.__class__.__name__) for a in self.agents]
        return f"PipelineRunner(name={self.name!r}, agents={agent_names})"
