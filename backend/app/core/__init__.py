"""Core orchestration engine: scene state machine, turn tracker, dice, and resolution."""
