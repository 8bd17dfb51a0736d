"""Pure recomputation transforms over GraphState snapshots."""
