"""
Fruit Merge
===========

Server-authoritative fruit merge game: the per-session simulation, the
session host, replay integrity and anti-cheat analysis.

All tunable parameters are in game_config.yaml and are identical for every
session on a deployment.
"""

__version__ = "0.1.0"
