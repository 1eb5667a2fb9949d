"""Registry of known agent actions.

Gives approval prompts and the CLI a description and a nominal risk level for
each tool name. Classification itself never reads the registry: rules and
judgment decide per call.
"""

from pydantic import BaseModel, Field

from tollgate.approval.models import RiskLevel
from tollgate.logging import get_logger

logger = get_logger("tollgate.approval.registry")


class ActionDefinition(BaseModel):
    """Static description of a tool the agent may call."""

    name: str = Field(..., description="Tool name as used by the agent")
    description: str = Field(..., description="Human-readable summary")
    default_level: RiskLevel = Field(..., description="Typical risk of the tool")


class ActionRegistry:
    """Registry for action definitions, keyed by tool name.

    Example:
        >>> registry = ActionRegistry()
        >>> registry.register(ActionDefinition(
        ...     name="deploy", description="Deploy", default_level=RiskLevel.L2))
        >>> registry.get("deploy").default_level
        <RiskLevel.L2: 'L2'>
    """

    def __init__(self, actions: list[ActionDefinition] | None = None):
        self._actions: dict[str, ActionDefinition] = {}
        for action in actions or []:
            self.register(action)

    def register(self, action: ActionDefinition) -> None:
        """Register an action, replacing any earlier definition of the same name."""
        if action.name in self._actions:
            logger.debug("Replacing action definition", name=action.name)
        self._actions[action.name] = action

    def get(self, name: str) -> ActionDefinition | None:
        return self._actions.get(name)

    def describe(self, name: str) -> str:
        """Description for ``name``, or the name itself when unknown."""
        action = self.get(name)
        return action.description if action else name

    def list_actions(self) -> list[ActionDefinition]:
        return list(self._actions.values())

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, name: str) -> bool:
        return name in self._actions


BUILTIN_ACTIONS = [
    ActionDefinition(name="read_file", description="Read a file", default_level=RiskLevel.L0),
    ActionDefinition(name="list_dir", description="List directory contents", default_level=RiskLevel.L0),
    ActionDefinition(name="search", description="Search files", default_level=RiskLevel.L0),
    ActionDefinition(name="write_file", description="Write/edit a file", default_level=RiskLevel.L1),
    ActionDefinition(name="delete_file", description="Delete a file", default_level=RiskLevel.L2),
    ActionDefinition(name="shell_exec", description="Execute shell command", default_level=RiskLevel.L2),
    ActionDefinition(name="git_commit", description="Git commit", default_level=RiskLevel.L2),
    ActionDefinition(name="git_push", description="Git push", default_level=RiskLevel.L2),
]


def default_registry() -> ActionRegistry:
    """A fresh registry holding the built-in actions."""
    return ActionRegistry(BUILTIN_ACTIONS)
