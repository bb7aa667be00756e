"""
コーチサービス
練習セッション、原稿生成、読み上げをつなぐ
"""
import logging
import random
from typing import Callable, Sequence

from jamtalk.config import PROMPT_WORDS, SCRIPT_FAILED_MESSAGE
from jamtalk.models.schemas import NarrationVoice
from jamtalk.services.checkout_service import CheckoutService
from jamtalk.services.narration_service import NarrationPlayer
from jamtalk.services.openai_service import OpenAIService
from jamtalk.services.session_service import SpeechCaptureSession
from jamtalk.services.usage_service import UsageMeter

logger = logging.getLogger(__name__)


class CoachOrchestrator:
    """練習全体の流れを制御するクラス"""

    def __init__(
        self,
        usage_meter: UsageMeter,
        openai_service: OpenAIService,
        narration_player: NarrationPlayer,
        checkout_service: CheckoutService | None = None,
        on_upsell: Callable[[], None] | None = None,
        words: Sequence[str] = PROMPT_WORDS,
    ) -> None:
        """
        初期化処理

        Args:
            usage_meter: 利用状況サービス
            openai_service: 原稿生成に使うOpenAIサービス
            narration_player: 読み上げプレーヤー
            checkout_service: 決済サービス
            on_upsell: 有料機能が必要なときに呼ばれるコールバック
            words: お題の候補
        """
        self.usage_meter = usage_meter
        self.openai_service = openai_service
        self.narration_player = narration_player
        self.checkout_service = checkout_service
        self.on_upsell = on_upsell
        self.words = list(words)

        self.script: str | None = None
        self.script_error: str | None = None

    @property
    def narration_enabled(self) -> bool:
        """読み上げ操作が可能か"""
        return bool(self.script)

    def pick_word(self) -> str:
        """お題の単語をランダムに選ぶ"""
        return random.choice(self.words)

    def start_practice(self, session: SpeechCaptureSession, word: str | None = None) -> bool:
        """
        練習を開始する（無料枠を使い切っていればアップセル）

        Args:
            session: 練習セッション
            word: お題（指定しない場合はランダム）

        Returns:
            録音を開始した場合True
        """
        if not self.usage_meter.can_attempt():
            self._upsell()
            return False
        started: bool = session.start(word or self.pick_word())
        if not started:
            self._upsell()
        return started

    async def request_script(self, word: str) -> str | None:
        """
        お題の単語についてお手本の原稿を取得する（サブスクリプション限定）

        Args:
            word: お題の単語

        Returns:
            原稿、未契約または生成失敗時はNone
        """
        if not self.usage_meter.get_stats().is_subscribed:
            self._upsell()
            return None

        self.script = None
        self.script_error = None
        try:
            script: str | None = await self.openai_service.generate_script(word)
        except Exception as e:
            logger.error("原稿の取得に失敗しました: %s", e)
            script = None

        if not script:
            self.script_error = SCRIPT_FAILED_MESSAGE
            return None
        self.script = script
        return script

    async def listen(
        self,
        voice: NarrationVoice = NarrationVoice.ALLOY,
        speed: float = 1.0,
    ) -> bool:
        """
        取得済みの原稿を読み上げる

        Returns:
            最後まで再生した場合True
        """
        if not self.script:
            return False
        return await self.narration_player.play(self.script, voice=voice, speed=speed)

    async def stop_listening(self) -> None:
        """読み上げを停止する"""
        await self.narration_player.stop()

    async def practice_again(self, session: SpeechCaptureSession) -> None:
        """
        読み上げを破棄し、セッションをIDLEに戻す

        Args:
            session: 練習セッション
        """
        await self.narration_player.stop()
        session.reset()
        self.script = None
        self.script_error = None

    def subscribe(self, plan_id: str) -> str:
        """
        決済ページを開く

        Args:
            plan_id: プランID

        Returns:
            開いたURL
        """
        if self.checkout_service is None:
            raise RuntimeError("決済サービスが設定されていません")
        return self.checkout_service.start_checkout(plan_id)

    def complete_checkout(self, success: bool) -> None:
        """
        決済ページから戻ったときの処理

        Args:
            success: 決済が成功した場合True
        """
        if success and self.checkout_service is not None:
            self.checkout_service.handle_success()
        elif success:
            self.usage_meter.set_subscription(True)
        else:
            logger.info("決済はキャンセルされました")

    def _upsell(self) -> None:
        if self.on_upsell:
            self.on_upsell()
