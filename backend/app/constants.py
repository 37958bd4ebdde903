"""Centralized rule constants shared across the app."""
from __future__ import annotations

# Fixed PbtA stat keys; anything else normalizes to modifier 0
STAT_KEYS: tuple[str, ...] = ("cool", "hard", "hot", "sharp", "weird")
STAT_MIN = -2
STAT_MAX = 3

# Harm track
HARM_MIN = 0
HARM_MAX = 6
HARM_IMPAIRED_AT = 4
TAKEN_OUT_CONDITION = "taken-out"

# Outcome thresholds (2d6 + modifier); not configurable per campaign
STRONG_HIT_MIN = 10
WEAK_HIT_MIN = 7

DIE_FACES = 6

# Initiative rolls when the admin does not supply a value: 2d6 + this stat
INITIATIVE_STAT = "cool"

# Scene history
RECENT_SCENES_DEFAULT = 10
RECENT_SCENES_MAX = 50

# Relationship score range
RELATIONSHIP_MIN = -10
RELATIONSHIP_MAX = 10

# Clock defaults
CLOCK_DEFAULT_MAX_TICKS = 6
