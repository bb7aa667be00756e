"""
読み上げサービス
原稿を音声化して再生する。音声生成の方式（クラウド / ローカルエンジン）は
構築時に選ばれたプロバイダーに委ね、失敗時の代替は呼び出し元が決める。

同時に再生するのは常に1件のみ。新しい再生要求は前の要求を取り消し、
その後片付け（生成の中断・再生停止・一時ファイル削除）を待ってから開始する。
"""
import asyncio
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional, Protocol

import aiofiles
import numpy as np
import pyttsx3

from jamtalk.config import NARRATION_FAILED_MESSAGE
from jamtalk.models.schemas import NarrationRequest, NarrationVoice, PlaybackState
from jamtalk.services.openai_service import OpenAIService

if TYPE_CHECKING:
    from jamtalk.services.audio_service import AudioService

logger = logging.getLogger(__name__)

StateCallback = Callable[[PlaybackState], None]
ErrorCallback = Callable[[str], None]


class CancellationToken:
    """1件の読み上げ要求に対応する取り消しトークン"""

    def __init__(self) -> None:
        self._cancelled: bool = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        """取り消し済みならCancelledErrorを送出"""
        if self._cancelled:
            raise asyncio.CancelledError()


class NarrationProvider(Protocol):
    """読み上げ音声を生成するプロバイダー"""

    async def synthesize(self, text: str, voice: NarrationVoice, speed: float) -> Path: ...


def _temp_audio_path(suffix: str) -> Path:
    """一時音声ファイルのパスを作成"""
    fd, name = tempfile.mkstemp(prefix="jamtalk_narration_", suffix=suffix)
    os.close(fd)
    return Path(name)


class OpenAINarrationProvider:
    """OpenAIの音声合成を使用するプロバイダー"""

    def __init__(self, openai_service: OpenAIService) -> None:
        self.openai_service = openai_service

    async def synthesize(self, text: str, voice: NarrationVoice, speed: float) -> Path:
        """
        音声を生成して一時ファイル（mp3）に保存する

        Args:
            text: 読み上げるテキスト
            voice: 音声
            speed: 再生速度

        Returns:
            一時ファイルのパス（呼び出し元が削除する）
        """
        audio: bytes = await self.openai_service.synthesize_speech(text, voice.value, speed)
        path: Path = _temp_audio_path(".mp3")
        try:
            async with aiofiles.open(path, "wb") as f:
                await f.write(audio)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        return path


class LocalNarrationProvider:
    """端末の音声合成エンジン（pyttsx3）を使用するプロバイダー"""

    # 優先する英語ネイティブ音声
    PREFERRED_VOICES: List[str] = [
        "Alex",  # macOS
        "Samantha",  # macOS
        "Microsoft Zira",  # Windows
        "Google US English",
    ]

    def __init__(self, base_rate: int = 165) -> None:
        """
        初期化処理

        Args:
            base_rate: 速度1.0のときの1分あたりの単語数
        """
        self.base_rate = base_rate

    async def synthesize(self, text: str, voice: NarrationVoice, speed: float) -> Path:
        """
        音声を生成して一時ファイルに保存する
        エンジンは別スレッドで動作し、取り消された場合も完了後にファイルを削除する

        Args:
            text: 読み上げるテキスト
            voice: 音声（ローカルエンジンでは英語音声を自動選択するため未使用）
            speed: 再生速度

        Returns:
            一時ファイルのパス（呼び出し元が削除する）
        """
        path: Path = _temp_audio_path(".wav")
        rate = int(self.base_rate * speed)
        render = asyncio.ensure_future(asyncio.to_thread(self._render, text, path, rate))
        try:
            await asyncio.shield(render)
        except asyncio.CancelledError:
            render.add_done_callback(lambda _: path.unlink(missing_ok=True))
            raise
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        return path

    def _render(self, text: str, path: Path, rate: int) -> None:
        engine = pyttsx3.init()
        try:
            engine.setProperty("rate", rate)
            voice_id: str | None = self._select_voice(engine)
            if voice_id:
                engine.setProperty("voice", voice_id)
            engine.save_to_file(text, str(path))
            engine.runAndWait()
        finally:
            engine.stop()

    def _select_voice(self, engine: "pyttsx3.Engine") -> str | None:
        """英語の音声を選ぶ（優先リスト → en-US/en-GB → 任意の英語）"""
        voices = engine.getProperty("voices") or []

        def languages(v: object) -> str:
            langs = getattr(v, "languages", None) or []
            return " ".join(
                lang.decode(errors="ignore") if isinstance(lang, bytes) else str(lang)
                for lang in langs
            ).replace("_", "-")

        for preferred in self.PREFERRED_VOICES:
            for v in voices:
                if preferred in (getattr(v, "name", "") or ""):
                    return v.id
        for v in voices:
            if "en-US" in languages(v) or "en-GB" in languages(v):
                return v.id
        for v in voices:
            if "en" in languages(v).lower():
                return v.id
        return voices[0].id if voices else None


class NarrationPlayer:
    """読み上げの生成・再生・取り消しを管理するクラス"""

    def __init__(
        self,
        provider: NarrationProvider,
        audio_service: Optional["AudioService"] = None,
        on_state_change: StateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """
        初期化処理

        Args:
            provider: 音声生成プロバイダー
            audio_service: 音声再生サービス（指定しない場合は新規作成）
            on_state_change: 再生状態が変わったときのコールバック
            on_error: 失敗時にユーザー向けメッセージを受け取るコールバック
        """
        if audio_service is None:
            from jamtalk.services.audio_service import AudioService

            audio_service = AudioService()
        self.provider = provider
        self.audio_service = audio_service
        self.on_state_change = on_state_change
        self.on_error = on_error

        self._state: PlaybackState = PlaybackState.IDLE
        self._token: CancellationToken | None = None
        self._task: asyncio.Task[bool] | None = None
        self._paused: bool = False
        # 再生・停止の要求ごとに増える番号（後から来た要求が優先）
        self._generation: int = 0

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_paused(self) -> bool:
        return self._paused

    async def play(
        self,
        text: str,
        voice: NarrationVoice = NarrationVoice.ALLOY,
        speed: float = 1.0,
        on_end: Callable[[], None] | None = None,
    ) -> bool:
        """
        テキストを読み上げる。再生中・生成中の読み上げは先に停止する

        Args:
            text: 読み上げるテキスト
            voice: 音声
            speed: 再生速度（0.25～4.0）
            on_end: 最後まで再生したときのコールバック（取り消された場合は呼ばれない）

        Returns:
            最後まで再生した場合True、取り消し・失敗時はFalse

        Raises:
            pydantic.ValidationError: テキストが空、または速度が範囲外の場合
        """
        request = NarrationRequest(text=text, voice=voice, speed=speed)
        generation: int = await self._cancel_current()
        if generation != self._generation:
            # 後片付けを待つ間に別の再生・停止が要求された
            return False

        token = CancellationToken()
        task: asyncio.Task[bool] = asyncio.get_running_loop().create_task(
            self._run(request, token, on_end)
        )
        self._token = token
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if token.cancelled:
                return False
            raise
        finally:
            if self._task is task:
                self._task = None

    async def stop(self) -> None:
        """読み上げを停止し、後片付けが終わるまで待つ"""
        await self._cancel_current()

    async def _cancel_current(self) -> int:
        """
        現在の要求を取り消して後片付けを待つ

        Returns:
            この呼び出しの要求番号。待機中に新しい要求が来た場合は最新の番号と一致しない
        """
        self._generation += 1
        generation: int = self._generation
        token, task = self._token, self._task
        self._token = None
        self._task = None
        if token is not None:
            token.cancel()
        self.audio_service.stop_playback()
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])
        if generation != self._generation:
            return generation
        self._paused = False
        if self._state != PlaybackState.IDLE:
            self._set_state(PlaybackState.STOPPED)
            self._set_state(PlaybackState.IDLE)
        return generation

    def pause(self) -> bool:
        """一時停止（再生中のみ）"""
        if self._state != PlaybackState.PLAYING or self._paused:
            return False
        self._paused = self.audio_service.pause_playback()
        return self._paused

    def resume(self) -> bool:
        """一時停止から再開"""
        if self._state != PlaybackState.PLAYING or not self._paused:
            return False
        if self.audio_service.resume_playback():
            self._paused = False
            return True
        return False

    async def _run(
        self,
        request: NarrationRequest,
        token: CancellationToken,
        on_end: Callable[[], None] | None,
    ) -> bool:
        path: Path | None = None
        started_at: float = time.monotonic()
        try:
            self._set_state(PlaybackState.GENERATING)
            try:
                path = await self.provider.synthesize(request.text, request.voice, request.speed)
                token.raise_if_cancelled()
                audio_data: np.ndarray = await asyncio.to_thread(self.audio_service.load_clip, path)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("読み上げ音声の生成に失敗しました: %s", e)
                self._fail(token)
                return False
            token.raise_if_cancelled()

            loop = asyncio.get_running_loop()
            finished = asyncio.Event()
            if not self.audio_service.play_clip(
                audio_data, on_finished=lambda: loop.call_soon_threadsafe(finished.set)
            ):
                self._fail(token)
                return False
            self._set_state(PlaybackState.PLAYING)
            logger.info("読み上げを開始しました (%.1f秒で生成)", time.monotonic() - started_at)

            await finished.wait()
            token.raise_if_cancelled()
            self._set_state(PlaybackState.IDLE)
            if on_end:
                on_end()
            return True
        finally:
            if path is not None:
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning("一時ファイル削除エラー: %s", e)

    def _fail(self, token: CancellationToken) -> None:
        if token.cancelled:
            return
        self._set_state(PlaybackState.ERRORED)
        if self.on_error:
            self.on_error(NARRATION_FAILED_MESSAGE)
        self._set_state(PlaybackState.IDLE)

    def _set_state(self, state: PlaybackState) -> None:
        if self._state == state:
            return
        self._state = state
        if self.on_state_change:
            self.on_state_change(state)


def create_narration_provider(
    kind: str | None = None,
    openai_service: OpenAIService | None = None,
) -> NarrationProvider:
    """
    読み上げプロバイダーを作成する

    Args:
        kind: "openai" または "local"（指定しない場合はJAMTALK_NARRATION_PROVIDER、既定はopenai）
        openai_service: OpenAIサービス（openaiの場合に使用）

    Returns:
        プロバイダー
    """
    kind = (kind or os.getenv("JAMTALK_NARRATION_PROVIDER") or "openai").lower()
    if kind == "local":
        return LocalNarrationProvider()
    if kind != "openai":
        raise ValueError(f"不明な読み上げプロバイダーです: {kind}")
    return OpenAINarrationProvider(openai_service or OpenAIService())
