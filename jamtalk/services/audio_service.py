"""
音声再生サービス
音声ファイルの読み込みと、停止・一時停止できる再生を行う
"""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional

import numpy as np
import sounddevice as sd
from pydub import AudioSegment

logger = logging.getLogger(__name__)


class AudioService:
    """音声出力を管理するサービスクラス"""

    def __init__(self) -> None:
        """初期化処理"""
        self.is_playing: bool = False
        self.is_paused: bool = False
        self._stream: Optional[sd.OutputStream] = None
        self._clip: np.ndarray = np.zeros(0, dtype=np.float32)
        self._position: int = 0
        self._on_finished: Optional[Callable[[], None]] = None
        self._lock = threading.Lock()

        # 音声設定
        self.chunk_size: int = 1024
        self.sample_rate: int = 44100
        self.channels: int = 1
        self.dtype: np.dtype = np.float32

    def load_clip(self, path: Path) -> np.ndarray:
        """
        音声ファイルを読み込み、再生用のモノラル波形に変換する

        Args:
            path: 音声ファイルのパス（mp3, wav, aiffなど）

        Returns:
            -1.0～1.0に正規化された波形（numpy配列）
        """
        sound = AudioSegment.from_file(str(path))

        # サンプリングレートを再生設定に合わせる
        if sound.frame_rate != self.sample_rate:
            sound = sound.set_frame_rate(self.sample_rate)

        audio_data = np.array(sound.get_array_of_samples())
        if sound.channels == 2:
            audio_data = audio_data.reshape((-1, 2))
            audio_data = audio_data.mean(axis=1)  # モノラル化

        # 正規化 (-1.0 to 1.0)
        scale = float(1 << (8 * sound.sample_width - 1))
        return audio_data.astype(np.float32) / scale

    def play_clip(
        self,
        audio_data: np.ndarray,
        on_finished: Optional[Callable[[], None]] = None,
    ) -> bool:
        """
        音声の再生を開始する（再生完了を待たない）

        Args:
            audio_data: 再生する波形
            on_finished: 最後まで再生したときに呼ばれるコールバック（オーディオスレッドから呼ばれる）

        Returns:
            再生開始に成功した場合True
        """
        self.stop_playback()

        with self._lock:
            self._clip = np.asarray(audio_data, dtype=self.dtype).reshape(-1)
            self._position = 0
            self.is_paused = False

        for device_index in self._candidate_output_devices():
            try:
                stream = sd.OutputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype=self.dtype,
                    blocksize=self.chunk_size,
                    callback=self._playback_callback,
                    finished_callback=self._handle_stream_finished,
                    device=device_index,
                )
                self._on_finished = on_finished
                self._stream = stream
                self.is_playing = True
                stream.start()
                logger.debug("再生を開始しました (Device Index: %s)", device_index)
                return True
            except Exception as e:
                logger.warning("再生エラー (Device %s): %s", device_index, e)
                self._on_finished = None
                self._stream = None
                self.is_playing = False
                continue

        logger.error("すべてのデバイスで再生に失敗しました")
        return False

    def stop_playback(self) -> None:
        """再生を停止し、ストリームを解放する（完了コールバックは呼ばれない）"""
        stream = self._stream
        self._stream = None
        self._on_finished = None
        self.is_playing = False
        self.is_paused = False
        if stream is None:
            return
        try:
            stream.abort()
            stream.close()
        except Exception as e:
            logger.warning("再生停止エラー: %s", e)

    def pause_playback(self) -> bool:
        """一時停止（無音を出力し、再生位置を保持する）"""
        if not self.is_playing:
            return False
        self.is_paused = True
        return True

    def resume_playback(self) -> bool:
        """一時停止から再開"""
        if not self.is_playing or not self.is_paused:
            return False
        self.is_paused = False
        return True

    def _playback_callback(
        self, outdata: np.ndarray, frames: int, time_info: Any, status: sd.CallbackFlags
    ) -> None:
        """sounddeviceのコールバック関数"""
        if status:
            logger.debug("Audio callback status: %s", status)
        if self.is_paused:
            outdata.fill(0)
            return
        with self._lock:
            chunk = self._clip[self._position:self._position + frames]
            self._position += len(chunk)
        outdata[:len(chunk), 0] = chunk
        outdata[len(chunk):] = 0
        if len(chunk) < frames:
            raise sd.CallbackStop

    def _handle_stream_finished(self) -> None:
        """ストリーム終了時の処理"""
        callback = self._on_finished
        self._on_finished = None
        self.is_playing = False
        if callback:
            callback()

    def _candidate_output_devices(self) -> List[Optional[int]]:
        """試行する出力デバイスのリストを作成"""
        candidate_devices: List[Optional[int]] = []

        # 1. デフォルトデバイス
        try:
            if sd.default.device[1] >= 0:
                candidate_devices.append(sd.default.device[1])
        except Exception:
            pass

        # 2. その他の出力可能なデバイス
        try:
            devices = sd.query_devices()
            for i, dev in enumerate(devices):
                if dev["max_output_channels"] > 0 and i not in candidate_devices:
                    candidate_devices.append(i)
        except Exception:
            pass

        # 最後にNoneを追加（デフォルトの挙動を試す）
        if None not in candidate_devices:
            candidate_devices.append(None)
        return candidate_devices

    def __del__(self) -> None:
        """クリーンアップ"""
        self.stop_playback()
