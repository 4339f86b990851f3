"""
Tests for the episode status lifecycle.

Covers:
- Legal and illegal transitions
- DELETED is terminal
- Episode.set_status returns the previous status and rejects illegal moves
"""

import pytest

from podcast_receiver.models import ALLOWED_TRANSITIONS, Episode, EpisodeStatus, InvalidStatusTransition
from podcast_receiver.models.status import INITIAL_STATUSES, check_transition


class TestTransitions:

    @pytest.mark.parametrize("current,target", [
        (EpisodeStatus.NEW, EpisodeStatus.DOWNLOADING),
        (EpisodeStatus.NEW, EpisodeStatus.SKIPPED),
        (EpisodeStatus.NEW, EpisodeStatus.ERROR),
        (EpisodeStatus.SKIPPED, EpisodeStatus.DOWNLOADING),
        (EpisodeStatus.DOWNLOADING, EpisodeStatus.DOWNLOADED),
        (EpisodeStatus.DOWNLOADING, EpisodeStatus.ERROR),
        (EpisodeStatus.DOWNLOADING, EpisodeStatus.DELETED),
        (EpisodeStatus.DOWNLOADED, EpisodeStatus.DELETED),
        (EpisodeStatus.ERROR, EpisodeStatus.DELETED),
    ])
    def test_legal(self, current, target):
        assert current.can_transition_to(target)
        check_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (EpisodeStatus.SKIPPED, EpisodeStatus.ERROR),
        (EpisodeStatus.DOWNLOADED, EpisodeStatus.DOWNLOADING),
        (EpisodeStatus.ERROR, EpisodeStatus.DOWNLOADING),
        (EpisodeStatus.NEW, EpisodeStatus.DOWNLOADED),
    ])
    def test_illegal(self, current, target):
        assert not current.can_transition_to(target)
        with pytest.raises(InvalidStatusTransition):
            check_transition(current, target)

    def test_deleted_is_terminal(self):
        assert ALLOWED_TRANSITIONS[EpisodeStatus.DELETED] == frozenset()
        assert EpisodeStatus.DELETED.is_terminal
        for status in EpisodeStatus:
            assert not EpisodeStatus.DELETED.can_transition_to(status)

    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(EpisodeStatus)

    def test_initial_statuses(self):
        assert INITIAL_STATUSES == {EpisodeStatus.NEW, EpisodeStatus.SKIPPED}


class TestEpisodeSetStatus:

    def test_returns_previous(self):
        episode = Episode(channel_id=1, enclosure_url="https://cdn.example.com/a.mp3")
        previous = episode.set_status(EpisodeStatus.DOWNLOADING)
        assert previous == EpisodeStatus.NEW
        assert episode.status == EpisodeStatus.DOWNLOADING

    def test_illegal_move_leaves_status(self):
        episode = Episode(
            channel_id=1,
            enclosure_url="https://cdn.example.com/a.mp3",
            status=EpisodeStatus.DOWNLOADED,
        )
        with pytest.raises(InvalidStatusTransition) as exc_info:
            episode.set_status(EpisodeStatus.DOWNLOADING)
        assert exc_info.value.current == EpisodeStatus.DOWNLOADED
        assert exc_info.value.target == EpisodeStatus.DOWNLOADING
        assert episode.status == EpisodeStatus.DOWNLOADED

    def test_invalid_transition_is_value_error(self):
        assert issubclass(InvalidStatusTransition, ValueError)
