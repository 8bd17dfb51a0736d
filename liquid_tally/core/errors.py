"""
Error taxonomy for delegation and tallying.

Every error here is raised before any state is touched, so a failed call
leaves the graph and every tally exactly as they were.
"""


class LiquidTallyError(Exception):
    """Base class for all errors raised by liquid_tally."""


class CycleDetected(LiquidTallyError):
    """Adding the delegation edge would close a cycle."""

    def __init__(self, source, target, chain=None):
        self.source = source
        self.target = target
        self.chain = list(chain or [])
        super().__init__(f"Delegating {source!r} -> {target!r} would create a cycle")


class SelfDelegation(CycleDetected):
    def __init__(self, participant):
        super().__init__(participant, participant, [participant])
        self.args = (f"{participant!r} cannot delegate to itself",)


class NotDelegating(LiquidTallyError):
    def __init__(self, participant):
        self.participant = participant
        super().__init__(f"{participant!r} has no delegate")


class UnknownParticipant(LiquidTallyError):
    def __init__(self, participant):
        self.participant = participant
        super().__init__(f"Unknown participant {participant!r}")


class InvalidStake(LiquidTallyError, ValueError):
    pass


class InvalidCheckpoint(LiquidTallyError, ValueError):
    pass


class UnknownProposal(LiquidTallyError):
    def __init__(self, proposal_id):
        self.proposal_id = proposal_id
        super().__init__(f"Unknown proposal {proposal_id!r}")


class ProposalExists(LiquidTallyError):
    def __init__(self, proposal_id):
        self.proposal_id = proposal_id
        super().__init__(f"Proposal {proposal_id!r} is already open")


class AlreadyClosed(LiquidTallyError):
    def __init__(self, proposal_id):
        self.proposal_id = proposal_id
        super().__init__(f"Proposal {proposal_id!r} is closed")


class InvalidChoice(LiquidTallyError, ValueError):
    pass


class InvariantViolation(LiquidTallyError):
    """Raised by the verifier when a checked property does not hold."""

    def __init__(self, failed):
        self.failed = list(failed)
        super().__init__(f"Invariant(s) violated: {', '.join(self.failed)}")
