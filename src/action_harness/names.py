"""Random name-suffix generation for objects created with a generate_name."""
import random
import string
from typing import Callable, Optional

StringGenerator = Callable[[int], str]

_LETTERS = string.ascii_lowercase + string.digits


def rand_string(n: int, rng: Optional[random.Random] = None) -> str:
    """Return ``n`` random lowercase alphanumeric characters."""
    choice = (rng or random).choice
    return "".join(choice(_LETTERS) for _ in range(n))


def seeded_generator(seed: int) -> StringGenerator:
    """Deterministic generator: same seed, same sequence of suffixes."""
    rng = random.Random(seed)

    def generate(n: int) -> str:
        return rand_string(n, rng)

    return generate
