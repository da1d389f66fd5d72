"""
Terrarium — Behavioral Orchestration Core for a Synthetic Creature.

This package keeps a small persistent creature alive inside a real-time control
loop. A slow, stochastic language model is consulted now and then for what to
do next; everything in between is carried by fast local reflexes, an internal
heartbeat, a metabolism, and an episodic memory that feeds back into prompts.

Architecture layers (bottom to top):
    1. Traits (immutable heritable parameters)
    2. Energy ledger (metabolism, dormancy)
    3. Episodic memory + conversation history
    4. Heartbeat clock (sense → think → feel → rest)
    5. Action repair (untrusted text → valid action)
    6. Behavior strategies (legacy, plan queue, event driven, layered)
    7. Orchestrator (composition root, one control loop)
"""

__version__ = "0.1.0"
