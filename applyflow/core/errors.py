"""Error taxonomy shared by steps, capabilities and the engine."""


class AutomationError(Exception):
    """Base class for all workflow errors."""


class StateValidationError(AutomationError):
    """A step's hard prerequisite is missing from the envelope."""


class CapabilityError(AutomationError):
    """A capability port call failed."""


class NavigationError(CapabilityError):
    """The page could not be loaded."""


class ExtractionTimeout(CapabilityError):
    """AI-backed page extraction did not finish in time."""


class ScriptError(CapabilityError):
    """A script evaluated in the page raised or could not run."""


class InferenceError(CapabilityError):
    """The inference backend failed or returned a malformed answer."""


class ResumeNotFound(CapabilityError):
    """No resume blob exists for the requested id."""


class TransferError(CapabilityError):
    """A resume blob could not be transferred."""


class GraphDefinitionError(AutomationError):
    """A workflow graph was built with missing steps or incomplete routes."""


class UnknownEdgeLabel(AutomationError):
    """A decision function returned a label its edge does not route."""

    def __init__(self, step: str, label: object) -> None:
        super().__init__(f"Step '{step}' produced unrouted label {label!r}")
        self.step = step
        self.label = label


class EnvelopeViolation(AutomationError):
    """A step returned something other than an extended envelope."""


class StepLimitExceeded(AutomationError):
    """A run executed more steps than the engine allows."""


class BrowserUnavailable(CapabilityError):
    """No browser session could be started."""
