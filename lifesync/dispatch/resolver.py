"""
Target Resolution

Finds the record a command refers to from a free-text hint ("rent",
"hdfc", "netflix") by case-insensitive substring match over the most
recently fetched collection.

Two policies, chosen in AppSettings.target_match_policy:

    first    the first match wins; no hint means the first record
    clarify  several matches (or several records and no hint) raise
             AmbiguousTargetError listing the candidates, unless exactly
             one record matches the hint exactly
"""

from typing import Callable, Optional, Sequence, TypeVar

from lifesync.errors import AmbiguousTargetError, TargetNotFoundError


T = TypeVar("T")

FIRST = "first"
CLARIFY = "clarify"


class TargetResolver:
    def __init__(self, policy: str = FIRST):
        if policy not in (FIRST, CLARIFY):
            raise ValueError(f"Unknown target match policy: {policy}")
        self.policy = policy

    def resolve(
        self,
        records: Sequence[T],
        hint: Optional[str],
        label: Callable[[T], str],
        noun: str,
    ) -> T:
        """
        Pick one record.

        Args:
            records: Candidates in their default ordering
            hint: Free text from the user (may be None)
            label: Text of a record to match the hint against
            noun: What the records are, for messages ("reminder")

        Raises:
            TargetNotFoundError: Nothing to pick, or nothing matches the hint
            AmbiguousTargetError: Several candidates under the clarify policy
        """
        if not records:
            raise TargetNotFoundError(f"You don't have any {noun}s yet.")

        hint = (hint or "").strip()
        if not hint:
            if self.policy == CLARIFY and len(records) > 1:
                raise self._ambiguous(records, label, noun, f"Which {noun} do you mean?")
            return records[0]

        needle = hint.lower()
        matches = [r for r in records if needle in label(r).lower()]
        if not matches:
            raise TargetNotFoundError(f"Couldn't find any {noun} matching '{hint}'.")
        if len(matches) == 1 or self.policy == FIRST:
            return matches[0]

        exact = [r for r in matches if label(r).lower() == needle]
        if len(exact) == 1:
            return exact[0]
        raise self._ambiguous(
            matches, label, noun, f"'{hint}' matches more than one {noun}. Which one?"
        )

    @staticmethod
    def _ambiguous(records, label, noun, message) -> AmbiguousTargetError:
        names = [label(r) for r in records]
        listed = "\n".join(f"• {name}" for name in names)
        return AmbiguousTargetError(f"{message}\n{listed}", candidates=names)
