"""
練習セッションサービス
リアルタイム書き起こし、カウントダウン、フィードバック依頼までを状態機械で管理する

状態遷移:
    IDLE -> CAPTURING -> FINALIZING -> COMPLETE
    CAPTURING -> FAILED（音声認識エラー）
フィードバック生成に失敗しても COMPLETE とし、書き起こしは残す。

停止・時間切れの直後は FINALIZING のまま音声認識の終了通知を待ち、
停止後に確定した発話も書き起こしに含めてから評価する。
"""
import asyncio
import logging
from typing import Callable, Dict

from jamtalk.config import (
    ANALYSIS_FAILED_MESSAGE,
    CAPTURE_END_TIMEOUT_SECONDS,
    GENERIC_CAPTURE_ERROR_TEMPLATE,
    get_session_seconds,
    load_capture_error_messages,
)
from jamtalk.exceptions import InvalidSessionTransitionError
from jamtalk.models.schemas import (
    FeedbackDocument,
    SessionSnapshot,
    SessionState,
    TranscriptUpdate,
)
from jamtalk.services.evaluation_service import EvaluationService
from jamtalk.services.transcription_service import LiveTranscriber
from jamtalk.services.usage_service import UsageMeter

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[SessionSnapshot], None]

_SETTLED_STATES = (SessionState.COMPLETE, SessionState.FAILED)


class SpeechCaptureSession:
    """1回の練習（録音から評価まで）を管理するクラス"""

    def __init__(
        self,
        transcriber: LiveTranscriber,
        evaluation_service: EvaluationService,
        usage_meter: UsageMeter,
        duration_seconds: int | None = None,
        error_messages: Dict[str, str] | None = None,
        tick_interval: float = 1.0,
        on_change: ChangeCallback | None = None,
        end_timeout: float = CAPTURE_END_TIMEOUT_SECONDS,
    ) -> None:
        """
        初期化処理

        Args:
            transcriber: リアルタイム音声認識
            evaluation_service: フィードバック生成サービス
            usage_meter: 利用状況サービス
            duration_seconds: 録音時間（秒）
            error_messages: 音声認識エラー種別 -> メッセージの対応表
            tick_interval: カウントダウンの間隔（秒）
            on_change: 状態が変わるたびにスナップショットを受け取るコールバック
            end_timeout: 停止後に音声認識の終了通知を待つ最大秒数
        """
        self.transcriber = transcriber
        self.evaluation_service = evaluation_service
        self.usage_meter = usage_meter
        self.duration_seconds: int = duration_seconds or get_session_seconds()
        self.error_messages: Dict[str, str] = (
            error_messages if error_messages is not None else load_capture_error_messages()
        )
        self.tick_interval: float = tick_interval
        self.on_change = on_change
        self.end_timeout: float = end_timeout

        self._state: SessionState = SessionState.IDLE
        self._prompt_word: str = ""
        self._final_transcript: str = ""
        self._interim_transcript: str = ""
        self._remaining_seconds: int = self.duration_seconds
        self._feedback: FeedbackDocument | None = None
        self._feedback_error: str | None = None
        self._error_message: str | None = None

        # 古い実行の完了処理を無視するための世代番号
        self._generation: int = 0
        self._timer_task: asyncio.Task[None] | None = None
        self._analysis_task: asyncio.Task[None] | None = None
        # 停止後、音声認識の終了通知を待っている間True
        self._awaiting_end: bool = False
        self._end_wait_task: asyncio.Task[None] | None = None
        self._settled: asyncio.Event = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def prompt_word(self) -> str:
        return self._prompt_word

    @property
    def final_transcript(self) -> str:
        return self._final_transcript

    @property
    def interim_transcript(self) -> str:
        return self._interim_transcript

    @property
    def display_transcript(self) -> str:
        return self._final_transcript + self._interim_transcript

    @property
    def remaining_seconds(self) -> int:
        return self._remaining_seconds

    @property
    def feedback(self) -> FeedbackDocument | None:
        return self._feedback

    @property
    def feedback_error(self) -> str | None:
        return self._feedback_error

    @property
    def error_message(self) -> str | None:
        return self._error_message

    def snapshot(self) -> SessionSnapshot:
        """現在の状態の読み取り専用コピーを返す"""
        return SessionSnapshot(
            prompt_word=self._prompt_word,
            state=self._state,
            final_transcript=self._final_transcript,
            interim_transcript=self._interim_transcript,
            remaining_seconds=self._remaining_seconds,
            feedback=self._feedback,
            feedback_error=self._feedback_error,
            error_message=self._error_message,
        )

    def start(self, prompt_word: str) -> bool:
        """
        録音を開始する（IDLEからのみ）

        Args:
            prompt_word: お題の単語

        Returns:
            開始した場合True、無料枠を使い切っている場合False（呼び出し元でアップセルを表示）

        Raises:
            InvalidSessionTransitionError: IDLE以外で呼ばれた場合
        """
        if self._state != SessionState.IDLE:
            raise InvalidSessionTransitionError(f"{self._state.value} から録音は開始できません")
        if not self.usage_meter.can_attempt():
            logger.info("無料枠を使い切っているため録音を開始しません")
            return False

        self._generation += 1
        self._prompt_word = prompt_word
        self._final_transcript = ""
        self._interim_transcript = ""
        self._remaining_seconds = self.duration_seconds
        self._feedback = None
        self._feedback_error = None
        self._error_message = None
        self._awaiting_end = False
        self._settled.clear()
        self._state = SessionState.CAPTURING
        logger.info("録音を開始しました (お題: %s)", prompt_word)

        self._timer_task = asyncio.get_running_loop().create_task(
            self._run_countdown(self._generation)
        )
        try:
            self.transcriber.start(self._handle_update, self._handle_error, self._handle_end)
        except Exception as e:
            logger.error("音声認識の開始に失敗しました: %s", e)
            self._handle_error("audio-capture")
            return True

        self._notify()
        return True

    def stop(self) -> None:
        """
        ユーザー操作で録音を早めに終了する
        FINALIZINGに移り、音声認識の終了通知を受けてから評価を始める
        """
        if self._state == SessionState.CAPTURING:
            self._begin_finalizing()

    def tick(self) -> None:
        """カウントダウンを1秒進める。0になったら録音を終了する"""
        if self._state != SessionState.CAPTURING:
            return
        self._remaining_seconds = max(0, self._remaining_seconds - 1)
        if self._remaining_seconds == 0:
            self._begin_finalizing()
        else:
            self._notify()

    def reset(self) -> None:
        """
        IDLEに戻す（COMPLETEまたはFAILEDからのみ）

        Raises:
            InvalidSessionTransitionError: それ以外の状態で呼ばれた場合
        """
        if self._state not in _SETTLED_STATES:
            raise InvalidSessionTransitionError(f"{self._state.value} からはリセットできません")
        self._generation += 1
        self._cancel_timer()
        self._cancel_end_wait()
        self._awaiting_end = False
        self._prompt_word = ""
        self._final_transcript = ""
        self._interim_transcript = ""
        self._remaining_seconds = self.duration_seconds
        self._feedback = None
        self._feedback_error = None
        self._error_message = None
        self._settled.clear()
        self._state = SessionState.IDLE
        self._notify()

    async def wait_settled(self) -> SessionSnapshot:
        """COMPLETEまたはFAILEDになるまで待機する"""
        await self._settled.wait()
        return self.snapshot()

    def message_for_error(self, kind: str) -> str:
        """音声認識エラー種別をユーザー向けメッセージに変換"""
        message: str | None = self.error_messages.get(kind)
        if message:
            return message
        return GENERIC_CAPTURE_ERROR_TEMPLATE.format(kind=kind)

    def _handle_update(self, update: TranscriptUpdate) -> None:
        if self._state != SessionState.CAPTURING and not self._awaiting_end:
            return
        for segment in update.final_segments:
            self._append_final(segment)
        self._interim_transcript = update.interim or ""
        self._notify()

    def _handle_error(self, kind: str) -> None:
        if self._awaiting_end:
            # 停止後のエラーはそれまでの書き起こしで評価する
            logger.warning("録音停止後の音声認識エラー: %s", kind)
            self._finish_capture()
            return
        if self._state != SessionState.CAPTURING:
            return
        self._cancel_timer()
        self._stop_transcriber()
        self._error_message = self.message_for_error(kind)
        self._interim_transcript = ""
        self._set_settled(SessionState.FAILED)
        logger.warning("音声認識エラー: %s", kind)

    def _handle_end(self) -> None:
        if self._state == SessionState.CAPTURING:
            # 音声認識側で終了した
            self._stop_transcriber()
            self._finish_capture()
        elif self._awaiting_end:
            self._finish_capture()

    def _append_final(self, segment: str) -> None:
        if not segment:
            return
        if (
            self._final_transcript
            and not self._final_transcript[-1].isspace()
            and not segment[0].isspace()
        ):
            self._final_transcript += " "
        self._final_transcript += segment

    def _begin_finalizing(self) -> None:
        """録音を止め、停止後の確定結果と終了通知を待つ"""
        self._cancel_timer()
        self._state = SessionState.FINALIZING
        self._awaiting_end = True
        self._end_wait_task = asyncio.get_running_loop().create_task(
            self._wait_for_end(self._generation)
        )
        self._notify()
        self._stop_transcriber()

    async def _wait_for_end(self, generation: int) -> None:
        await asyncio.sleep(self.end_timeout)
        if generation != self._generation or not self._awaiting_end:
            return
        logger.warning("音声認識の終了通知が%.1f秒以内に届きませんでした", self.end_timeout)
        self._finish_capture()

    def _finish_capture(self) -> None:
        """書き起こしを確定して評価を始める"""
        self._cancel_timer()
        self._cancel_end_wait()
        self._awaiting_end = False
        self._interim_transcript = ""
        self._state = SessionState.FINALIZING

        transcript: str = self._final_transcript.strip()
        if not transcript:
            # 何も話されていない
            self._feedback = FeedbackDocument()
            self._set_settled(SessionState.COMPLETE)
            return

        self.usage_meter.record_attempt()
        self._notify()
        self._analysis_task = asyncio.get_running_loop().create_task(
            self._analyze(self._generation, transcript)
        )

    async def _analyze(self, generation: int, transcript: str) -> None:
        try:
            document: FeedbackDocument | None = await self.evaluation_service.evaluate_transcript(
                transcript
            )
        except Exception as e:
            logger.error("フィードバックの取得に失敗しました: %s", e)
            document = None

        if generation != self._generation or self._state != SessionState.FINALIZING:
            return
        if document is None:
            self._feedback_error = ANALYSIS_FAILED_MESSAGE
            self._feedback = FeedbackDocument(
                original_transcript=transcript,
                summary=ANALYSIS_FAILED_MESSAGE,
            )
        else:
            self._feedback = document
        self._set_settled(SessionState.COMPLETE)

    async def _run_countdown(self, generation: int) -> None:
        while generation == self._generation and self._state == SessionState.CAPTURING:
            await asyncio.sleep(self.tick_interval)
            if generation != self._generation:
                return
            self.tick()

    def _cancel_timer(self) -> None:
        task = self._timer_task
        self._timer_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _cancel_end_wait(self) -> None:
        task = self._end_wait_task
        self._end_wait_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _stop_transcriber(self) -> None:
        try:
            self.transcriber.stop()
        except Exception as e:
            logger.warning("音声認識の停止に失敗しました: %s", e)

    def _set_settled(self, state: SessionState) -> None:
        self._state = state
        self._settled.set()
        logger.info("セッションが終了しました: %s", state.value)
        self._notify()

    def _notify(self) -> None:
        if self.on_change:
            self.on_change(self.snapshot())

