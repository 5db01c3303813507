"""
Rulesmith - LLM-assisted rule authoring for game entities.

Turns a free-text description of a game entity into a validated set of
declarative rule objects:
- Recovers structured output from an unreliable generation oracle
- Plans and transactionally creates side-effect entities
- Watches the host's validation channel after a commit
- Regenerates a repaired rule set from captured validation signals
"""

__version__ = "0.1.0"
