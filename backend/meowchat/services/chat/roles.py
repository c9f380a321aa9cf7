import random

HUMAN = 'human'
CAT = 'cat'
AI = 'ai'
RANDOM = 'random'

ROLES = (HUMAN, CAT, AI)
SELECTIONS = ROLES + (RANDOM,)


def assign_role(selection: str, rng: random.Random = None) -> str:
    """Resolve a requested role; 'random' picks uniformly among the concrete roles.

    Validation of ``selection`` happens at the transport edge.
    """
    if selection == RANDOM:
        return (rng or random).choice(ROLES)
    return selection


def is_compatible(seeker: str, candidate: str) -> bool:
    """A human may pair with anyone; cats and AIs only ever pair with a human."""
    return seeker == HUMAN or candidate == HUMAN
