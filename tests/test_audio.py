import sys
from unittest import mock

from break_reader.audio import SoundDevicePlayer, chime_wav_bytes, read_wav, wrap_wav_header
from break_reader.config import CHIME_NOTES_HZ, CHIME_NOTE_SEC, SAMPLE_RATE


def test_chime_is_a_readable_wav():
    pcm, rate, channels, width = read_wav(chime_wav_bytes())

    assert (rate, channels, width) == (SAMPLE_RATE, 1, 2)
    assert len(pcm) == len(CHIME_NOTES_HZ) * int(SAMPLE_RATE * CHIME_NOTE_SEC) * 2


def test_wrap_header_round_trip():
    pcm, rate, channels, width = read_wav(wrap_wav_header(b"\x01\x00\x02\x00", 22050, channels=2))

    assert pcm == b"\x01\x00\x02\x00"
    assert (rate, channels, width) == (22050, 2, 2)


def test_player_plays_and_stops_once(logger):
    fake_sd = mock.Mock()
    player = SoundDevicePlayer(logger)

    with mock.patch.dict(sys.modules, {"sounddevice": fake_sd}):
        player.play(wrap_wav_header(b"\x00\x00" * 8, 24000))
        assert player.is_playing
        player.stop()
        player.stop()

    assert fake_sd.play.call_count == 1
    assert fake_sd.play.call_args.kwargs["samplerate"] == 24000
    assert fake_sd.stop.call_count == 2
    assert not player.is_playing


def test_player_ignores_empty_audio(logger):
    fake_sd = mock.Mock()
    player = SoundDevicePlayer(logger)

    with mock.patch.dict(sys.modules, {"sounddevice": fake_sd}):
        player.play(None)
        player.stop()

    fake_sd.play.assert_not_called()
    fake_sd.stop.assert_not_called()
