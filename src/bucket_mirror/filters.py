"""Include filter shared by local and remote enumeration."""

import re
from typing import Iterable, List, Optional, Pattern


class KeyFilter:
    """Precompiled include matcher for object keys.

    A key is accepted when the pattern matches anywhere in it (``re.search``),
    so ``\\.html$`` selects HTML files at any depth. Without a pattern every
    key is accepted.
    """

    def __init__(self, pattern: Optional[Pattern[str]] = None):
        self.pattern = pattern

    @classmethod
    def from_pattern(cls, pattern: Optional[str]) -> "KeyFilter":
        """Compile ``pattern``; ``None`` or empty yields an accept-all filter."""
        if not pattern:
            return cls()
        return cls(re.compile(pattern))

    def __call__(self, key: str) -> bool:
        if self.pattern is None:
            return True
        return self.pattern.search(key) is not None

    def apply(self, keys: Iterable[str]) -> List[str]:
        """Return the accepted keys, preserving order."""
        return [key for key in keys if self(key)]

    def __repr__(self) -> str:
        source = self.pattern.pattern if self.pattern is not None else None
        return f"KeyFilter({source!r})"


ACCEPT_ALL = KeyFilter()
