"""
リアルタイム音声認識サービス
Azure Speech Serviceの連続認識を使用して、発話をリアルタイムに書き起こす
"""
import asyncio
import logging
import os
from typing import Any, Callable, Protocol

import azure.cognitiveservices.speech as speechsdk

from jamtalk.config import RECOGNITION_LANGUAGE
from jamtalk.models.schemas import TranscriptUpdate

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[TranscriptUpdate], None]
ErrorCallback = Callable[[str], None]
EndCallback = Callable[[], None]


class LiveTranscriber(Protocol):
    """リアルタイム音声認識のインターフェース"""

    def start(
        self,
        on_update: UpdateCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
    ) -> None: ...

    def stop(self) -> None: ...


# Azureのキャンセル理由から音声認識エラー種別への変換表
_AZURE_ERROR_KINDS = {
    "AuthenticationFailure": "service-not-allowed",
    "Forbidden": "service-not-allowed",
    "ConnectionFailure": "network",
    "ServiceTimeout": "network",
    "ServiceUnavailable": "network",
    "TooManyRequests": "network",
    "BadRequest": "bad-grammar",
    "RuntimeError": "aborted",
}


class AzureLiveTranscriber:
    """Azure Speech Serviceを使用するリアルタイム音声認識クラス"""

    def __init__(self, language: str = RECOGNITION_LANGUAGE) -> None:
        """
        初期化処理
        環境変数からAzure Speech Serviceのキーとリージョンを取得し、設定する
        """
        self.speech_key: str | None = os.getenv("AZURE_SPEECH_KEY")
        self.speech_region: str | None = os.getenv("AZURE_SPEECH_REGION")

        if not self.speech_key or not self.speech_region:
            raise ValueError("AZURE_SPEECH_KEYとAZURE_SPEECH_REGION環境変数が設定されていません")

        self.speech_config: speechsdk.SpeechConfig = speechsdk.SpeechConfig(
            subscription=self.speech_key,
            region=self.speech_region
        )
        self.speech_config.speech_recognition_language = language

        self.recognizer: speechsdk.SpeechRecognizer | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._result_index: int = 0
        self._finished: bool = False
        # startごとに増える番号（前の認識器から遅れて届くイベントを無視する）
        self._generation: int = 0

    def start(
        self,
        on_update: UpdateCallback,
        on_error: ErrorCallback,
        on_end: EndCallback,
    ) -> None:
        """
        マイクからの連続認識を開始
        コールバックは呼び出し元のイベントループ上で実行される

        Args:
            on_update: 認識結果（確定・途中）を受け取るコールバック
            on_error: エラー種別を受け取るコールバック
            on_end: 認識終了時のコールバック
        """
        self._loop = asyncio.get_running_loop()
        self._generation += 1
        generation: int = self._generation
        self._result_index = 0
        self._finished = False

        audio_config = speechsdk.audio.AudioConfig(use_default_microphone=True)
        recognizer = speechsdk.SpeechRecognizer(
            speech_config=self.speech_config,
            audio_config=audio_config
        )

        def handle_recognizing(evt: Any) -> None:
            # 途中結果
            update = TranscriptUpdate(result_index=self._result_index, interim=evt.result.text)
            self._dispatch(generation, on_update, update)

        def handle_recognized(evt: Any) -> None:
            # 確定結果
            if evt.result.reason != speechsdk.ResultReason.RecognizedSpeech or not evt.result.text:
                return
            if generation != self._generation:
                return
            update = TranscriptUpdate(
                result_index=self._result_index,
                final_segments=(evt.result.text,),
                interim="",
            )
            self._result_index += 1
            self._dispatch(generation, on_update, update)

        def handle_canceled(evt: Any) -> None:
            details = evt.cancellation_details
            if details.reason != speechsdk.CancellationReason.Error:
                return
            kind: str = self._error_kind(details.code)
            logger.warning("音声認識がキャンセルされました: %s %s", kind, details.error_details)
            self._finish(generation, on_error, kind)

        def handle_session_stopped(evt: Any) -> None:
            self._finish(generation, on_end)

        recognizer.recognizing.connect(handle_recognizing)
        recognizer.recognized.connect(handle_recognized)
        recognizer.canceled.connect(handle_canceled)
        recognizer.session_stopped.connect(handle_session_stopped)

        self.recognizer = recognizer
        recognizer.start_continuous_recognition_async()
        logger.info("音声認識を開始しました")

    def stop(self) -> None:
        """連続認識を停止"""
        recognizer = self.recognizer
        if recognizer is None:
            return
        self.recognizer = None
        try:
            recognizer.stop_continuous_recognition_async()
        except Exception as e:
            logger.warning("音声認識の停止に失敗しました: %s", e)

    def _dispatch(self, generation: int, callback: Callable[..., None], *args: Any) -> None:
        """SDKのスレッドからイベントループへコールバックを渡す"""
        if generation != self._generation:
            return
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._deliver, generation, callback, *args)

    def _deliver(self, generation: int, callback: Callable[..., None], *args: Any) -> None:
        # ループに届くまでの間に次の認識が始まっていれば捨てる
        if generation != self._generation:
            logger.debug("前回の音声認識のイベントを破棄しました")
            return
        callback(*args)

    def _finish(self, generation: int, callback: Callable[..., None], *args: Any) -> None:
        """エラーまたは終了を認識1回につき一度だけ通知する"""
        if generation != self._generation or self._finished:
            return
        self._finished = True
        self._dispatch(generation, callback, *args)

    @staticmethod
    def _error_kind(code: Any) -> str:
        """Azureのエラーコードを音声認識エラー種別に変換"""
        name: str = getattr(code, "name", str(code)).split(".")[-1]
        return _AZURE_ERROR_KINDS.get(name, name.lower() or "unknown")
