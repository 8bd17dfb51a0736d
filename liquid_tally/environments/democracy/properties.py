# environments/democracy/properties.py

from ...core.property import (
    CumulativeWeightConsistency,
    ForestAcyclicity,
    PowerConservation,
    TallyConservation,
    TallyConsistency,
)

delegation_acyclicity = ForestAcyclicity()
cumulative_weight_consistency = CumulativeWeightConsistency()
power_conservation = PowerConservation()
tally_consistency = TallyConsistency()
tally_conservation = TallyConservation()


class LiquidDemocracyProperties:
    """Property sets checked on delegation and proposal snapshots."""

    DELEGATION = {delegation_acyclicity, cumulative_weight_consistency, power_conservation}
    TALLY = {tally_consistency, tally_conservation}
    LIQUID_DEMOCRACY = DELEGATION | TALLY
