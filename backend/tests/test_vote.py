import pytest

from infochess.services.games.errors import NotEligible, VoteInProgress, VoteNotFound
from infochess.services.games.vote import Vote, VoteTable, normalize_choice


def _recorder():
    calls = []
    return calls, (lambda: calls.append('pass')), (lambda: calls.append('fail')), (lambda: calls.append('done'))


def test_normalize_choice():
    assert normalize_choice(True) is True
    assert normalize_choice('Yes') is True
    assert normalize_choice(0) is False
    assert normalize_choice('n') is False
    with pytest.raises(ValueError):
        normalize_choice('maybe')


def test_vote_waits_for_every_eligible_ballot():
    calls, on_pass, on_fail, done = _recorder()
    vote = Vote('reset', 'Reset?', {'alice', 'bob'}, on_pass, on_fail, done)
    vote.cast_ballot('alice', True)
    assert not vote.resolved
    vote.cast_ballot('bob', True)
    assert vote.passed is True
    assert calls == ['pass', 'done']


def test_tie_fails():
    calls, on_pass, on_fail, done = _recorder()
    vote = Vote('reset', 'Reset?', {'alice', 'bob'}, on_pass, on_fail, done)
    vote.cast_ballot('alice', True)
    vote.cast_ballot('bob', False)
    assert vote.passed is False
    assert calls == ['fail', 'done']


def test_ineligible_voter_is_rejected():
    vote = Vote('reset', 'Reset?', {'alice'})
    with pytest.raises(NotEligible):
        vote.cast_ballot('carol', True)
    assert vote.ballots == {}


def test_removing_a_voter_drops_their_ballot_and_may_resolve():
    calls, on_pass, on_fail, done = _recorder()
    vote = Vote('reset', 'Reset?', {'alice', 'bob'}, on_pass, on_fail, done)
    vote.cast_ballot('alice', True)
    vote.remove_voter('bob')
    assert calls == ['pass', 'done']

    calls, on_pass, on_fail, done = _recorder()
    vote = Vote('reset', 'Reset?', {'alice', 'bob'}, on_pass, on_fail, done)
    vote.cast_ballot('bob', True)
    vote.remove_voter('bob')
    vote.remove_voter('alice')
    assert calls == ['fail', 'done']


def test_on_completed_runs_even_when_callback_raises():
    calls = []

    def boom():
        raise RuntimeError('boom')

    vote = Vote('reset', 'Reset?', {'alice'}, on_pass=boom, on_completed=lambda: calls.append('done'))
    with pytest.raises(RuntimeError):
        vote.cast_ballot('alice', True)
    assert calls == ['done']


def test_table_unregisters_resolved_votes():
    table = VoteTable()
    table.create('reset', 'Reset?', {'alice'})
    assert 'reset' in table
    with pytest.raises(VoteInProgress):
        table.create('reset', 'Again?', {'alice'})
    table.cast_ballot('reset', 'alice', True)
    assert len(table) == 0
    with pytest.raises(VoteNotFound):
        table.get('reset')


def test_vote_with_no_eligible_voters_fails_immediately():
    calls, on_pass, on_fail, done = _recorder()
    table = VoteTable()
    vote = table.create('reset', 'Reset?', set(), on_pass, on_fail, done)
    assert vote.resolved and vote.passed is False
    assert calls == ['fail', 'done']
    assert table.active() == []


def test_second_ballot_overwrites_first():
    calls, on_pass, on_fail, done = _recorder()
    vote = Vote('reset', 'Reset?', {'alice', 'bob'}, on_pass, on_fail, done)
    vote.cast_ballot('alice', True)
    vote.cast_ballot('alice', False)
    assert vote.ballots == {'alice': False}
    vote.cast_ballot('bob', True)
    assert calls == ['fail', 'done']
