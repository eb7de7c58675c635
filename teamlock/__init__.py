"""teamlock: team capability locks for scavenger-hunt devices."""

__version__ = "1.0.0"
