from app.services.exclusions import ExclusionPair, ExclusionSet, exclusions_equal, normalize_exclusions
from app.services.pairing import DrawnPairing, generate_pairings
from app.services.rounds import RoundLifecycle, RoundSnapshot

__all__ = [
    "DrawnPairing",
    "ExclusionPair",
    "ExclusionSet",
    "RoundLifecycle",
    "RoundSnapshot",
    "exclusions_equal",
    "generate_pairings",
    "normalize_exclusions",
]
