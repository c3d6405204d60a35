"""Error taxonomy shared by the stats core and the services around it.

Routers never catch these; ``leadflow.main`` maps each family to an HTTP
status through exception handlers.
"""


class LeadFlowError(Exception):
    """Base class for all domain errors."""


class ValidationError(LeadFlowError):
    """Input rejected at the boundary; nothing was applied."""


class MissingValueError(ValidationError):
    """An event kind that carries a value was recorded without a usable one."""


class DomainError(ValidationError, ValueError):
    """A numeric primitive was called outside its mathematical domain."""


class StateError(LeadFlowError):
    """The operation is not allowed in the entity's current lifecycle state."""


class ExperimentNotRunning(StateError):
    pass


class AlreadyConcludedError(StateError):
    pass


class UnsupportedVariantCount(StateError):
    pass


class NotFoundError(LeadFlowError):
    """A referenced experiment, variant, lead, campaign or algorithm does not exist."""

    def __init__(self, entity: str, identifier: object) -> None:
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class InsufficientDataError(LeadFlowError):
    """Not enough observations for a statistical primitive to be defined."""
