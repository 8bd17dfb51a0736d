"""
liquid_tally: liquid democracy delegation and vote tallying.

Participants delegate their whole stake to at most one other participant;
weight flows up delegation chains until a closer participant votes directly
and overrules the rest of the chain for their part of it.
"""
import logging

import jax

# Process-wide JAX setting, made here once before any submodule builds arrays:
# stakes are exact integers and int32 would overflow on real token balances.
jax.config.update("jax_enable_x64", True)

from .core.errors import (
    AlreadyClosed,
    CycleDetected,
    InvalidChoice,
    InvalidCheckpoint,
    InvalidStake,
    InvariantViolation,
    LiquidTallyError,
    NotDelegating,
    ProposalExists,
    SelfDelegation,
    UnknownParticipant,
    UnknownProposal,
)
from .core.graph import DelegationGraph
from .core.graph_state import GraphState
from .core.stake import StakeHistory, StakeOracle
from .core.tally import Choice, Tally, VoteRecord, VoteTallyEngine
from .environments.democracy.configuration import LiquidDemocracyConfig, load_config_from_env
from .environments.democracy.initialization import initialize_liquid_democracy
from .environments.democracy.mechanism import LiquidDemocracy

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
