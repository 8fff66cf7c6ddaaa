from __future__ import annotations

import logging
from typing import List

import pytest

from text_to_loud.config import SpeechTiming
from text_to_loud.speech.controller import (
    PlaybackState,
    SpeechController,
    split_highlight,
    word_at,
)
from text_to_loud.speech.voices import Voice


TEXT = "The quick brown fox jumps over the lazy dog"


class Recorder:
    def __init__(self) -> None:
        self.calls: List[str] = []
        self.highlights: List[int] = []

    def on_play(self) -> None:
        self.calls.append("play")

    def on_pause(self) -> None:
        self.calls.append("pause")

    def on_stop(self) -> None:
        self.calls.append("stop")

    def on_complete(self) -> None:
        self.calls.append("complete")

    def on_highlight_change(self, offset: int) -> None:
        self.highlights.append(offset)


def _build(engine, scheduler, text: str = TEXT, recorder: Recorder | None = None, **kwargs) -> SpeechController:
    callbacks = {}
    if recorder is not None:
        callbacks = {
            "on_play": recorder.on_play,
            "on_pause": recorder.on_pause,
            "on_stop": recorder.on_stop,
            "on_complete": recorder.on_complete,
            "on_highlight_change": recorder.on_highlight_change,
        }
    return SpeechController(
        engine,
        scheduler,
        text=text,
        clock=scheduler.time,
        **callbacks,
        **kwargs,
    )


def _start(controller: SpeechController, scheduler) -> None:
    controller.play()
    scheduler.advance(0.05)


def test_word_at_reads_until_next_whitespace() -> None:
    assert word_at("The quick brown", 4) == "quick"
    assert word_at("tab\tseparated", 0) == "tab"
    assert word_at("line\nbreak", 5) == "break"
    assert word_at("end", 3) == ""
    assert word_at("end", -1) == ""


def test_split_highlight_divides_text_around_current_word() -> None:
    assert split_highlight("The quick brown", 4) == ("The ", "quick", " brown")
    assert split_highlight("The quick brown", 0) == ("", "The", " quick brown")
    assert split_highlight("short", 99) == ("short", "", "")


def test_first_boundary_moves_highlight_to_second_word(engine, scheduler) -> None:
    controller = _build(engine, scheduler, text="The quick brown fox")

    controller.play()
    assert engine.spoken == []

    scheduler.advance(0.05)
    assert len(engine.spoken) == 1
    assert engine.spoken[0].text == "The quick brown fox"

    engine.boundary(4)

    assert controller.char_offset == 4
    assert controller.current_word == "quick"
    assert controller.state is PlaybackState.PLAYING


def test_failed_resume_restarts_from_saved_offset(engine, scheduler) -> None:
    controller = _build(engine, scheduler)
    _start(controller, scheduler)
    engine.boundary(10)
    controller.pause()
    assert controller.state is PlaybackState.PAUSED

    engine.resume_works = False
    controller.play()
    assert controller.state is PlaybackState.PAUSED

    scheduler.advance(0.1)
    assert controller.state is PlaybackState.PLAYING

    scheduler.advance(0.05)
    assert len(engine.spoken) == 2
    assert engine.spoken[-1].text == TEXT[10:]
    assert controller.current_utterance is engine.spoken[-1]

    engine.boundary(6)
    assert controller.char_offset == 16
    assert controller.current_word == "fox"


def test_successful_resume_keeps_the_same_utterance(engine, scheduler) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, recorder=recorder)
    _start(controller, scheduler)
    engine.boundary(4)
    controller.pause()

    controller.play()
    scheduler.advance(0.1)

    assert controller.state is PlaybackState.PLAYING
    assert len(engine.spoken) == 1
    assert engine.calls.count("resume") == 1
    assert recorder.calls == ["play", "pause"]

    engine.boundary(10)
    assert controller.char_offset == 10


def test_whitespace_only_text_is_a_no_op(engine, scheduler) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, text="   ", recorder=recorder)

    controller.play()
    scheduler.advance(1.0)

    assert controller.state is PlaybackState.IDLE
    assert engine.spoken == []
    assert engine.calls == []
    assert recorder.calls == []
    assert scheduler.pending == 0


def test_natural_end_resets_without_stop_notification(engine, scheduler) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, recorder=recorder)
    _start(controller, scheduler)
    engine.boundary(4)

    engine.finish()

    assert controller.state is PlaybackState.IDLE
    assert controller.char_offset == 0
    assert controller.current_word == ""
    assert "stop" not in recorder.calls
    assert recorder.calls == ["play", "complete"]


def test_end_while_paused_keeps_offset_for_resume(engine, scheduler) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, recorder=recorder)
    _start(controller, scheduler)
    engine.boundary(10)
    controller.pause()
    dropped = engine.current

    engine.finish()

    assert controller.state is PlaybackState.PAUSED
    assert controller.char_offset == 10
    assert controller.current_word == "brown"
    assert "complete" not in recorder.calls

    engine.boundary(20, utterance=dropped)
    assert controller.char_offset == 10

    controller.play()
    scheduler.advance(0.15)

    assert controller.state is PlaybackState.PLAYING
    assert engine.spoken[-1].text == TEXT[10:]
    assert controller.current_utterance is engine.spoken[-1]


@pytest.mark.parametrize("state", ["idle", "playing", "paused", "resuming"])
def test_stop_from_any_state_resets_session(engine, scheduler, state: str) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, recorder=recorder, initial_offset=10)
    if state != "idle":
        _start(controller, scheduler)
        engine.boundary(6)
    if state in {"paused", "resuming"}:
        controller.pause()
    if state == "resuming":
        controller.play()

    controller.stop()

    assert controller.state is PlaybackState.IDLE
    assert controller.char_offset == 0
    assert recorder.calls[-1] == "stop"
    assert scheduler.pending == 0

    scheduler.advance(1.0)
    assert controller.state is PlaybackState.IDLE


def test_events_from_a_cancelled_utterance_are_ignored(engine, scheduler) -> None:
    controller = _build(engine, scheduler)
    _start(controller, scheduler)
    stale = engine.current
    engine.boundary(4)

    controller.play()
    scheduler.advance(0.05)
    assert controller.char_offset == 0

    engine.boundary(20, utterance=stale)
    assert controller.char_offset == 0

    engine.finish(utterance=stale)
    assert controller.state is PlaybackState.PLAYING

    engine.fail("synthesis-failed", utterance=stale)
    assert controller.state is PlaybackState.PLAYING


def test_play_twice_leaves_a_single_utterance(engine, scheduler) -> None:
    controller = _build(engine, scheduler)

    controller.play()
    controller.play()
    scheduler.advance(0.05)

    assert len(engine.spoken) == 1
    assert engine.calls.count("speak") == 1
    assert controller.current_utterance is engine.current


def test_play_while_playing_restarts_with_one_active_utterance(engine, scheduler) -> None:
    controller = _build(engine, scheduler)
    _start(controller, scheduler)
    engine.boundary(10)

    _start(controller, scheduler)

    assert len(engine.spoken) == 2
    assert engine.spoken[-1].text == TEXT
    assert engine.current is engine.spoken[-1]
    assert controller.current_utterance is engine.spoken[-1]
    assert engine.calls[-2:] == ["cancel", "speak"]


@pytest.mark.parametrize("offset", [0, 4, 10, 16, 26])
def test_restart_text_matches_offset_and_boundaries_never_go_back(engine, scheduler, offset: int) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, recorder=recorder)
    _start(controller, scheduler)
    engine.boundary(offset)
    controller.pause()
    engine.resume_works = False
    controller.play()
    scheduler.advance(0.15)

    restarted = engine.spoken[-1]
    assert restarted.text == TEXT[offset:]

    for relative in (0, 4, 2, 10):
        engine.boundary(relative)
        assert controller.char_offset >= offset
    assert recorder.highlights == sorted(recorder.highlights)


def test_backwards_boundary_is_ignored(engine, scheduler) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, recorder=recorder)
    _start(controller, scheduler)

    engine.boundary(10)
    engine.boundary(4)
    engine.boundary(10)

    assert controller.char_offset == 10
    assert recorder.highlights == [10]


def test_non_word_boundaries_do_not_move_highlight(engine, scheduler) -> None:
    controller = _build(engine, scheduler)
    _start(controller, scheduler)

    engine.boundary(10, name="sentence")

    assert controller.char_offset == 0


def test_boundary_past_end_is_clamped(engine, scheduler) -> None:
    controller = _build(engine, scheduler, text="Hi there")
    _start(controller, scheduler)

    engine.boundary(500)

    assert controller.char_offset == len("Hi there")
    assert controller.current_word == ""


def test_initial_offset_is_used_for_first_play_only(engine, scheduler) -> None:
    controller = _build(engine, scheduler, initial_offset=10)
    assert controller.char_offset == 10
    assert controller.current_word == "brown"
    assert not controller.has_ever_played

    _start(controller, scheduler)
    assert engine.spoken[0].text == TEXT[10:]
    assert controller.char_offset == 10
    assert controller.has_ever_played

    controller.stop()
    assert controller.has_ever_played
    _start(controller, scheduler)
    assert engine.spoken[-1].text == TEXT


@pytest.mark.parametrize("initial_offset", [0, -3, len(TEXT), len(TEXT) + 5])
def test_out_of_range_initial_offset_starts_from_beginning(engine, scheduler, initial_offset: int) -> None:
    controller = _build(engine, scheduler, initial_offset=initial_offset)

    _start(controller, scheduler)

    assert engine.spoken[0].text == TEXT
    assert controller.char_offset == 0


def test_blank_remainder_completes_immediately(engine, scheduler) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, text="Hello     ", recorder=recorder, initial_offset=6)

    controller.play()
    scheduler.advance(1.0)

    assert engine.spoken == []
    assert controller.state is PlaybackState.IDLE
    assert controller.char_offset == 0
    assert recorder.calls == ["complete"]


def test_interrupted_error_is_swallowed(engine, scheduler) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, recorder=recorder)
    _start(controller, scheduler)
    engine.boundary(4)

    engine.fail("interrupted")

    assert controller.state is PlaybackState.PLAYING
    assert controller.char_offset == 4
    assert recorder.calls == ["play"]


def test_fatal_error_returns_to_idle(engine, scheduler, caplog) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, recorder=recorder)
    _start(controller, scheduler)
    engine.boundary(4)

    with caplog.at_level(logging.ERROR):
        engine.fail("synthesis-failed")

    assert controller.state is PlaybackState.IDLE
    assert controller.char_offset == 0
    assert "stop" not in recorder.calls
    assert "complete" not in recorder.calls
    assert any("synthesis-failed" in record.getMessage() for record in caplog.records)

    scheduler.advance(1.0)
    assert len(engine.spoken) == 1


def test_rate_must_be_a_supported_option(engine, scheduler) -> None:
    with pytest.raises(ValueError):
        _build(engine, scheduler, rate=3.0)

    controller = _build(engine, scheduler)
    with pytest.raises(ValueError):
        controller.rate = 0.8
    controller.rate = 1.25
    assert controller.rate == 1.25


def test_rate_and_voice_changes_apply_to_next_utterance(engine, scheduler) -> None:
    first_voice = Voice(id="a", name="Samantha", lang="en-US", gender="female")
    second_voice = Voice(id="b", name="Daniel", lang="en-GB", gender="male")
    controller = _build(engine, scheduler, voice=first_voice, rate=1.0)
    _start(controller, scheduler)

    controller.rate = 1.5
    controller.voice = second_voice
    assert engine.spoken[0].rate == 1.0
    assert engine.spoken[0].voice is first_voice

    controller.stop()
    _start(controller, scheduler)
    assert engine.spoken[-1].rate == 1.5
    assert engine.spoken[-1].voice is second_voice


def test_pause_before_submission_restarts_on_resume(engine, scheduler) -> None:
    controller = _build(engine, scheduler)

    controller.play()
    controller.pause()
    scheduler.advance(1.0)
    assert engine.spoken == []
    assert controller.state is PlaybackState.PAUSED

    controller.play()
    scheduler.advance(0.15)

    assert controller.state is PlaybackState.PLAYING
    assert len(engine.spoken) == 1
    assert engine.spoken[0].text == TEXT


def test_play_during_pending_resume_check_is_ignored(engine, scheduler) -> None:
    controller = _build(engine, scheduler)
    _start(controller, scheduler)
    controller.pause()

    controller.play()
    controller.play()
    scheduler.advance(0.1)

    assert engine.calls.count("resume") == 1
    assert controller.state is PlaybackState.PLAYING


def test_pause_is_ignored_unless_playing(engine, scheduler) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, recorder=recorder)

    controller.pause()
    assert controller.state is PlaybackState.IDLE

    _start(controller, scheduler)
    controller.pause()
    controller.pause()
    assert recorder.calls == ["play", "pause"]
    assert engine.calls.count("pause") == 1


def test_pause_budget_is_reported_after_long_pause(engine, scheduler) -> None:
    timing = SpeechTiming(pre_speak_delay=0.05, resume_check_delay=0.1, pause_budget=10.0)
    controller = _build(engine, scheduler, timing=timing)
    _start(controller, scheduler)
    engine.boundary(16)
    controller.pause()

    scheduler.advance(5.0)
    assert not controller.pause_budget_exceeded
    assert controller.pause_elapsed == pytest.approx(5.0)

    scheduler.advance(6.0)
    assert controller.pause_budget_exceeded
    assert controller.state is PlaybackState.PAUSED

    engine.resume_works = False
    controller.play()
    scheduler.advance(0.15)
    assert controller.pause_elapsed == 0.0
    assert engine.spoken[-1].text == TEXT[16:]


def test_highlight_notifications_only_fire_on_change(engine, scheduler) -> None:
    recorder = Recorder()
    controller = _build(engine, scheduler, recorder=recorder)
    _start(controller, scheduler)

    engine.boundary(4)
    engine.boundary(4)
    engine.boundary(10)
    controller.stop()

    assert recorder.highlights == [4, 10, 0]


def test_closed_session_ignores_play_and_late_events(engine, scheduler) -> None:
    controller = _build(engine, scheduler)
    _start(controller, scheduler)
    utterance = engine.current
    engine.boundary(4)

    controller.close()
    assert controller.state is PlaybackState.IDLE
    assert scheduler.pending == 0

    engine.boundary(10, utterance=utterance)
    engine.finish(utterance=utterance)
    controller.play()
    scheduler.advance(1.0)
    assert len(engine.spoken) == 1
    assert controller.char_offset == 4


def test_custom_timing_delays_are_honoured(engine, scheduler) -> None:
    timing = SpeechTiming(pre_speak_delay=0.2, resume_check_delay=0.5, pause_budget=1.0)
    controller = _build(engine, scheduler, timing=timing)

    controller.play()
    scheduler.advance(0.1)
    assert engine.spoken == []
    scheduler.advance(0.1)
    assert len(engine.spoken) == 1

    controller.pause()
    engine.resume_works = False
    controller.play()
    scheduler.advance(0.4)
    assert controller.state is PlaybackState.PAUSED
    scheduler.advance(0.1)
    assert controller.state is PlaybackState.PLAYING


def test_restart_logs_a_warning_event(engine, scheduler, caplog) -> None:
    controller = _build(engine, scheduler)
    _start(controller, scheduler)
    engine.boundary(10)
    controller.pause()
    engine.resume_works = False

    with caplog.at_level(logging.INFO, logger="text_to_loud.events"):
        controller.play()
        scheduler.advance(0.1)

    restart_records = [
        record
        for record in caplog.records
        if getattr(record, "event_type", "") == "PLAYBACK" and getattr(record, "event", "") == "restart"
    ]
    assert restart_records
    assert restart_records[0].levelno == logging.WARNING
    assert restart_records[0].event_payload["offset"] == 10
