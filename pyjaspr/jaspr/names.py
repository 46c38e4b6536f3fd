"""Stack name suggestions derived from commit subjects."""

import random
import re
import string
from typing import Optional

MAX_LENGTH = 40

def generate_name(subject: str) -> str:
    """Turn a commit subject into a branch-safe stack name."""
    name = re.sub(r'[^a-z0-9]', '-', subject.lower())
    name = re.sub(r'-{2,}', '-', name).strip('-')
    return _truncate_at_word_boundary(name, MAX_LENGTH)

def generate_suffix(rng: Optional[random.Random] = None) -> str:
    """Random 4-letter suffix used when a suggested name is already taken."""
    rng = rng or random.Random()
    return "".join(rng.choice(string.ascii_lowercase) for _ in range(4))

def _truncate_at_word_boundary(name: str, max_length: int) -> str:
    if len(name) <= max_length:
        return name
    truncated = name[:max_length]
    last_hyphen = truncated.rfind('-')
    return truncated[:last_hyphen] if last_hyphen > 0 else truncated
