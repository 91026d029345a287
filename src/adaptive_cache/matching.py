"""Key glob matching.

Only ``*`` is a wildcard; every other character matches literally and the
whole key must match (``category:*`` does not match ``listing:category:5``).
"""

import re
from functools import lru_cache
from typing import Iterable, List, Pattern


@lru_cache(maxsize=512)
def compile_glob(glob: str) -> Pattern:
    """Compile a key glob into an anchored regular expression."""
    parts = (re.escape(part) for part in glob.split("*"))
    return re.compile(".*".join(parts), re.DOTALL)


def glob_match(glob: str, key: str) -> bool:
    """Return True if ``key`` matches ``glob`` over its full length."""
    return compile_glob(glob).fullmatch(key) is not None


def filter_keys(glob: str, keys: Iterable[str]) -> List[str]:
    regex = compile_glob(glob)
    return [key for key in keys if regex.fullmatch(key) is not None]
