"""Consensus polls used for actions that need both players to agree.

A vote resolves as soon as every eligible voter has a ballot, or as soon as
its eligible set becomes empty (a failure). It passes only with a strict
majority of ``yes`` ballots among the ballots cast; ties fail.
"""
import logging
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional

from .errors import NotEligible, VoteInProgress, VoteNotFound

logger = logging.getLogger(__name__)

YES_CHOICES = {'yes', 'y', 'true', '1'}
NO_CHOICES = {'no', 'n', 'false', '0'}


def normalize_choice(choice: Any) -> bool:
    """Map a wire ballot onto ``True``/``False``; raises ``ValueError`` otherwise."""
    if isinstance(choice, bool):
        return choice
    if isinstance(choice, int) and choice in (0, 1):
        return bool(choice)
    if isinstance(choice, str):
        value = choice.strip().lower()
        if value in YES_CHOICES:
            return True
        if value in NO_CHOICES:
            return False
    raise ValueError(f'Unrecognized ballot choice: {choice!r}')


def _noop() -> None:
    return None


class Vote:
    def __init__(
        self,
        name: str,
        question: str,
        eligible_voters: Iterable[Hashable],
        on_pass: Optional[Callable[[], None]] = None,
        on_fail: Optional[Callable[[], None]] = None,
        on_completed: Optional[Callable[[], None]] = None,
    ):
        self.name = name
        self.question = question
        self.eligible_voters = set(eligible_voters)
        self.ballots: Dict[Hashable, bool] = {}
        self.on_pass = on_pass or _noop
        self.on_fail = on_fail or _noop
        self.on_completed = on_completed or _noop
        self.resolved = False
        self.passed: Optional[bool] = None

    def cast_ballot(self, voter: Hashable, choice: bool) -> None:
        if self.resolved:
            raise VoteNotFound(f'No active vote named {self.name!r}')
        if voter not in self.eligible_voters:
            raise NotEligible(f'Not eligible to vote in {self.name!r}')
        self.ballots[voter] = bool(choice)
        self.determine_result()

    def remove_voter(self, voter: Hashable) -> None:
        if self.resolved:
            return
        self.eligible_voters.discard(voter)
        self.ballots.pop(voter, None)
        self.determine_result()

    def tally(self) -> Dict[str, int]:
        yes = sum(1 for choice in self.ballots.values() if choice)
        return {'yes': yes, 'no': len(self.ballots) - yes}

    def determine_result(self) -> None:
        if self.resolved:
            return
        if not self.eligible_voters:
            self._resolve(False)
            return
        if not self.eligible_voters.issubset(self.ballots):
            return
        tally = self.tally()
        self._resolve(tally['yes'] > tally['no'])

    def _resolve(self, passed: bool) -> None:
        self.resolved = True
        self.passed = passed
        logger.info(f'[vote] name={self.name} passed={passed} tally={self.tally()}')
        try:
            if passed:
                self.on_pass()
            else:
                self.on_fail()
        finally:
            self.on_completed()

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'question': self.question}


class VoteTable:
    """Active votes of one session, keyed by name."""

    def __init__(self):
        self._votes: Dict[str, Vote] = {}

    def create(self, name, question, eligible_voters, on_pass=None, on_fail=None, on_completed=None) -> Vote:
        if name in self._votes:
            raise VoteInProgress(f'A {name!r} vote is already in progress')

        def _completed():
            self._votes.pop(name, None)
            if on_completed is not None:
                on_completed()

        vote = Vote(name, question, eligible_voters, on_pass, on_fail, _completed)
        self._votes[name] = vote
        vote.determine_result()
        return vote

    def get(self, name: str) -> Vote:
        vote = self._votes.get(name)
        if vote is None:
            raise VoteNotFound(f'No active vote named {name!r}')
        return vote

    def cast_ballot(self, name: str, voter: Hashable, choice: bool) -> Vote:
        vote = self.get(name)
        vote.cast_ballot(voter, choice)
        return vote

    def active(self) -> List[Vote]:
        return list(self._votes.values())

    def __contains__(self, name: str) -> bool:
        return name in self._votes

    def __len__(self) -> int:
        return len(self._votes)
