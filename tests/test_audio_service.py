"""
AudioServiceのテスト
"""
import pytest
import numpy as np
from unittest.mock import patch, Mock

try:
    import sounddevice as sd
except OSError:
    # PortAudioが入っていない環境
    pytest.skip("PortAudio is not available", allow_module_level=True)

from jamtalk.services.audio_service import AudioService


class TestAudioService:
    """AudioServiceのテストクラス"""

    @pytest.fixture
    def audio_service(self):
        """AudioServiceのインスタンスを作成"""
        return AudioService()

    def test_init(self, audio_service):
        """初期化テスト"""
        assert audio_service.is_playing is False
        assert audio_service.is_paused is False
        assert audio_service.chunk_size == 1024
        assert audio_service.sample_rate == 44100
        assert audio_service.channels == 1

    @patch("jamtalk.services.audio_service.AudioSegment.from_file")
    def test_load_clip(self, mock_from_file, audio_service):
        """ステレオ16bitの音声をモノラルに正規化する"""
        sound = Mock()
        sound.frame_rate = 44100
        sound.channels = 2
        sound.sample_width = 2
        sound.get_array_of_samples.return_value = [16384, 16384, -32768, -32768]
        mock_from_file.return_value = sound

        clip = audio_service.load_clip("clip.mp3")

        assert clip.dtype == np.float32
        np.testing.assert_allclose(clip, [0.5, -1.0])

    @patch("jamtalk.services.audio_service.AudioSegment.from_file")
    def test_load_clip_resamples(self, mock_from_file, audio_service):
        """サンプリングレートを再生設定に合わせる"""
        sound = Mock()
        sound.frame_rate = 24000
        resampled = sound.set_frame_rate.return_value
        resampled.channels = 1
        resampled.sample_width = 2
        resampled.get_array_of_samples.return_value = [0, 0]
        mock_from_file.return_value = sound

        audio_service.load_clip("clip.mp3")

        sound.set_frame_rate.assert_called_once_with(44100)

    @patch("jamtalk.services.audio_service.sd.query_devices", return_value=[])
    @patch("jamtalk.services.audio_service.sd.OutputStream")
    def test_play_clip(self, mock_stream, mock_query, audio_service):
        """再生を開始する"""
        result = audio_service.play_clip(np.zeros(10, dtype=np.float32))

        assert result is True
        assert audio_service.is_playing is True
        mock_stream.return_value.start.assert_called_once()

    @patch("jamtalk.services.audio_service.sd.query_devices", return_value=[])
    @patch("jamtalk.services.audio_service.sd.OutputStream", side_effect=Exception("no device"))
    def test_play_clip_no_device(self, mock_stream, mock_query, audio_service):
        """出力デバイスがない場合はFalse"""
        assert audio_service.play_clip(np.zeros(10, dtype=np.float32)) is False
        assert audio_service.is_playing is False

    @patch("jamtalk.services.audio_service.sd.query_devices", return_value=[])
    @patch("jamtalk.services.audio_service.sd.OutputStream")
    def test_stop_playback_skips_callback(self, mock_stream, mock_query, audio_service):
        """停止した場合は完了コールバックを呼ばない"""
        on_finished = Mock()
        audio_service.play_clip(np.zeros(10, dtype=np.float32), on_finished=on_finished)

        audio_service.stop_playback()
        audio_service._handle_stream_finished()

        mock_stream.return_value.abort.assert_called_once()
        mock_stream.return_value.close.assert_called_once()
        on_finished.assert_not_called()
        assert audio_service.is_playing is False

    @patch("jamtalk.services.audio_service.sd.query_devices", return_value=[])
    @patch("jamtalk.services.audio_service.sd.OutputStream")
    def test_stream_finished_calls_callback(self, mock_stream, mock_query, audio_service):
        """最後まで再生すると完了コールバックを呼ぶ"""
        on_finished = Mock()
        audio_service.play_clip(np.zeros(10, dtype=np.float32), on_finished=on_finished)

        audio_service._handle_stream_finished()

        on_finished.assert_called_once()
        assert audio_service.is_playing is False

    def test_playback_callback(self, audio_service):
        """波形を順に出力し、最後でCallbackStop"""
        audio_service._clip = np.array([0.1, 0.2, 0.3], dtype=np.float32)
        outdata = np.ones((2, 1), dtype=np.float32)

        audio_service._playback_callback(outdata, 2, None, None)
        np.testing.assert_allclose(outdata[:, 0], [0.1, 0.2])

        with pytest.raises(sd.CallbackStop):
            audio_service._playback_callback(outdata, 2, None, None)
        np.testing.assert_allclose(outdata[:, 0], [0.3, 0.0])

    def test_pause_outputs_silence(self, audio_service):
        """一時停止中は無音を出力し、位置を進めない"""
        audio_service._clip = np.array([0.5, 0.5], dtype=np.float32)
        audio_service.is_playing = True
        outdata = np.ones((2, 1), dtype=np.float32)

        assert audio_service.pause_playback() is True
        audio_service._playback_callback(outdata, 2, None, None)

        assert not outdata.any()
        assert audio_service._position == 0
        assert audio_service.resume_playback() is True
        assert audio_service.pause_playback() is True

    def test_pause_when_not_playing(self, audio_service):
        """再生していない場合は一時停止できない"""
        assert audio_service.pause_playback() is False
        assert audio_service.resume_playback() is False
