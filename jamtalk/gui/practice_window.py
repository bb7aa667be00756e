"""
練習画面のGUIコンポーネント
"""
import logging
import os

import flet as ft

from jamtalk.config import NARRATION_VOICES
from jamtalk.exceptions import CheckoutError
from jamtalk.models.schemas import (
    FeedbackDocument,
    NarrationVoice,
    PlaybackState,
    SessionSnapshot,
    SessionState,
)
from jamtalk.services.api_check_service import APICheckService
from jamtalk.services.coach_service import CoachOrchestrator
from jamtalk.services.session_service import SpeechCaptureSession

logger = logging.getLogger(__name__)


class PracticeWindow:
    """練習画面のウィンドウクラス"""

    def __init__(
        self,
        page: ft.Page,
        session: SpeechCaptureSession,
        coach: CoachOrchestrator,
        api_check_service: APICheckService | None = None,
    ) -> None:
        """
        初期化処理

        Args:
            page: Fletのページオブジェクト
            session: 練習セッション
            coach: 練習全体の制御
            api_check_service: API状態チェック（指定した場合は画面上部に表示）
        """
        self.page = page
        self.session = session
        self.coach = coach
        self.api_check_service = api_check_service
        self.plan_id: str = os.getenv("JAMTALK_PLAN_ID", "monthly")
        self.current_word: str = coach.pick_word()

        # セッションと読み上げの通知を受け取る
        self.session.on_change = self._on_session_changed
        self.coach.on_upsell = self._show_upsell
        self.coach.narration_player.on_state_change = self._on_playback_changed
        self.coach.narration_player.on_error = self._show_message

        # UIコンポーネント
        self.word_text = ft.Text(self.current_word, size=40, weight=ft.FontWeight.BOLD)
        self.timer_text = ft.Text("", size=24, color=ft.colors.BLACK)
        self.status_text = ft.Text("", size=14, color=ft.colors.BLACK)
        self.usage_text = ft.Text("", size=14, color=ft.colors.GREY_700)
        self.transcript_text = ft.Text("", size=16, selectable=True)
        self.feedback_column = ft.Column(spacing=10)
        self.start_button = ft.ElevatedButton("🎤 Start speaking", on_click=self._on_start_clicked, width=220, height=50)
        self.stop_button = ft.ElevatedButton("Stop", on_click=self._on_stop_clicked, width=120, height=50, visible=False)
        self.new_word_button = ft.TextButton("New word", on_click=self._on_new_word_clicked)
        self.script_button = ft.OutlinedButton("Native speaker script", on_click=self._on_script_clicked)
        self.script_text = ft.Text("", size=14, selectable=True)
        self.voice_dropdown = ft.Dropdown(
            options=[ft.dropdown.Option(v) for v in NARRATION_VOICES],
            value=NarrationVoice.ALLOY.value,
            width=150,
        )
        self.speed_slider = ft.Slider(min=0.5, max=1.5, divisions=10, value=1.0, label="{value}x", width=200)
        self.listen_button = ft.ElevatedButton("▶ Listen", on_click=self._on_listen_clicked, disabled=True)
        self.narration_row = ft.Row(
            [self.voice_dropdown, self.speed_slider, self.listen_button],
            alignment=ft.MainAxisAlignment.CENTER,
            visible=False,
        )
        self.upsell_dialog = ft.AlertDialog(
            title=ft.Text("Upgrade to JAM Talk Pro"),
            content=ft.Text("You've used all your free practices. Subscribe for unlimited practice and native speaker scripts."),
            actions=[
                ft.TextButton("Subscribe", on_click=self._on_subscribe_clicked),
                ft.TextButton("Maybe later", on_click=lambda e: self.page.close(self.upsell_dialog)),
            ],
        )
        # デスクトップ版ではブラウザからの戻りを受け取れないため、支払い完了を確認する
        self.checkout_dialog = ft.AlertDialog(
            modal=True,
            title=ft.Text("Finish your payment"),
            content=ft.Text("Complete the payment in your browser, then come back and confirm here."),
            actions=[
                ft.TextButton("I've completed payment", on_click=self._on_payment_confirmed),
                ft.TextButton("Cancel", on_click=self._on_payment_cancelled),
            ],
        )

    def build(self) -> None:
        """ウィジェットの構築"""
        api_texts = []
        if self.api_check_service:
            for status in self.api_check_service.check_all_apis():
                if status.status != "available":
                    api_texts.append(ft.Text(f"⚠️ {status.name}: {status.message}", size=12, color=ft.colors.ORANGE_800))

        self.page.add(
            ft.Container(
                content=ft.Column(
                    [
                        ft.Text("JAM Talk", size=32, weight=ft.FontWeight.BOLD),
                        ft.Text("Just a minute - Practice your English speaking skills!", size=16),
                        *api_texts,
                        self.usage_text,
                        ft.Container(height=10),
                        self.word_text,
                        self.new_word_button,
                        self.timer_text,
                        ft.Row([self.start_button, self.stop_button], alignment=ft.MainAxisAlignment.CENTER),
                        self.status_text,
                        self.transcript_text,
                        self.feedback_column,
                        ft.Divider(),
                        self.script_button,
                        self.script_text,
                        self.narration_row,
                    ],
                    horizontal_alignment=ft.CrossAxisAlignment.CENTER,
                    scroll=ft.ScrollMode.AUTO,
                ),
                padding=40,
                expand=True,
            )
        )
        self._update_usage()
        self.page.update()

    async def _on_start_clicked(self, e: ft.ControlEvent) -> None:
        """録音開始"""
        if self.session.state in (SessionState.COMPLETE, SessionState.FAILED):
            await self.coach.practice_again(self.session)
            self._render_script()
        if self.session.state != SessionState.IDLE:
            return
        self.feedback_column.controls.clear()
        self.coach.start_practice(self.session, self.current_word)
        self.page.update()

    def _on_stop_clicked(self, e: ft.ControlEvent) -> None:
        self.session.stop()

    def _on_new_word_clicked(self, e: ft.ControlEvent) -> None:
        if self.session.state in (SessionState.CAPTURING, SessionState.FINALIZING):
            return
        self.current_word = self.coach.pick_word()
        self.word_text.value = self.current_word
        self.page.update()

    async def _on_script_clicked(self, e: ft.ControlEvent) -> None:
        """お手本原稿の取得"""
        self.script_text.value = "Creating script..."
        self.page.update()
        await self.coach.request_script(self.current_word)
        self._render_script()

    async def _on_listen_clicked(self, e: ft.ControlEvent) -> None:
        """読み上げ開始・停止"""
        if self.coach.narration_player.state != PlaybackState.IDLE:
            await self.coach.stop_listening()
            return
        voice = NarrationVoice(self.voice_dropdown.value or NarrationVoice.ALLOY.value)
        await self.coach.listen(voice=voice, speed=float(self.speed_slider.value or 1.0))

    def _on_subscribe_clicked(self, e: ft.ControlEvent) -> None:
        """決済ページを開く"""
        self.page.close(self.upsell_dialog)
        try:
            self.coach.subscribe(self.plan_id)
        except (CheckoutError, RuntimeError) as ex:
            logger.error("決済エラー: %s", ex)
            self._show_message("Payment is not available right now. Please try again later.")
            return
        self.page.open(self.checkout_dialog)

    def _on_payment_confirmed(self, e: ft.ControlEvent) -> None:
        """支払い完了の確認"""
        self.page.close(self.checkout_dialog)
        self.coach.complete_checkout(True)
        self._update_usage()
        self._show_message("Welcome to JAM Talk Pro!")
        self.page.update()

    def _on_payment_cancelled(self, e: ft.ControlEvent) -> None:
        self.page.close(self.checkout_dialog)
        self.coach.complete_checkout(False)

    def _on_session_changed(self, snapshot: SessionSnapshot) -> None:
        """セッションの状態を画面に反映する"""
        capturing = snapshot.state == SessionState.CAPTURING
        self.start_button.visible = not capturing
        self.stop_button.visible = capturing
        self.start_button.disabled = snapshot.state == SessionState.FINALIZING
        self.start_button.text = "Practice again" if snapshot.state in (SessionState.COMPLETE, SessionState.FAILED) else "🎤 Start speaking"
        self.timer_text.value = f"{snapshot.remaining_seconds}s" if capturing else ""
        self.transcript_text.value = snapshot.display_transcript

        if snapshot.state == SessionState.CAPTURING:
            self.status_text.value = "Recording... speak about the word above."
            self.status_text.color = ft.colors.BLUE
        elif snapshot.state == SessionState.FINALIZING:
            self.status_text.value = "Analyzing your speech..."
            self.status_text.color = ft.colors.BLUE
        elif snapshot.state == SessionState.FAILED:
            self.status_text.value = snapshot.error_message or ""
            self.status_text.color = ft.colors.RED
        elif snapshot.state == SessionState.COMPLETE:
            self.status_text.value = snapshot.feedback_error or ("" if snapshot.final_transcript else "Nothing was recorded.")
            self.status_text.color = ft.colors.RED if snapshot.feedback_error else ft.colors.BLACK
            self.feedback_column.controls = self._build_feedback(snapshot.feedback)
        else:
            self.status_text.value = ""
            self.feedback_column.controls.clear()

        self._update_usage()
        self.page.update()

    def _on_playback_changed(self, state: PlaybackState) -> None:
        playing = state in (PlaybackState.GENERATING, PlaybackState.PLAYING)
        self.listen_button.text = "■ Stop" if playing else "▶ Listen"
        self.page.update()

    def _build_feedback(self, feedback: FeedbackDocument | None) -> list[ft.Control]:
        """フィードバック表示の作成"""
        if feedback is None or feedback.is_empty:
            return []
        controls: list[ft.Control] = []
        if feedback.original_transcript:
            controls.append(self._section("🌿 原始转录", [ft.Text(feedback.original_transcript, selectable=True)]))
        if feedback.grammar_items:
            controls.append(self._section("✏️ 语法建议", [
                ft.Text(f"❌ {item.original}\n✅ {item.suggestion}\n💡 {item.explanation}".strip())
                for item in feedback.grammar_items
            ]))
        if feedback.vocabulary_items:
            controls.append(self._section("💬 词汇升级", [
                ft.Text(f"❌ {item.original}\n✅ {item.suggestion}") for item in feedback.vocabulary_items
            ]))
        if feedback.pronunciation_items:
            controls.append(self._section("🔈 发音提示", [
                ft.Text(f"{item.word}\n❌ {item.problem}\n✅ {item.tip}") for item in feedback.pronunciation_items
            ]))
        if feedback.summary:
            controls.append(self._section("⭐️ 一句话总结", [ft.Text(feedback.summary)]))
        return controls

    def _section(self, title: str, body: list[ft.Control]) -> ft.Container:
        return ft.Container(
            content=ft.Column([ft.Text(title, size=18, weight=ft.FontWeight.BOLD), *body]),
            padding=15,
            border=ft.border.all(1, ft.colors.GREY_400),
            border_radius=10,
            width=600,
        )

    def _render_script(self) -> None:
        self.script_text.value = self.coach.script or self.coach.script_error or ""
        self.listen_button.disabled = not self.coach.narration_enabled
        self.narration_row.visible = self.coach.narration_enabled
        self.page.update()

    def _update_usage(self) -> None:
        stats = self.coach.usage_meter.get_stats()
        if stats.is_subscribed:
            self.usage_text.value = "⭐ Pro: unlimited practice"
        else:
            self.usage_text.value = f"Free practices left: {int(stats.remaining_free)}"

    def _show_upsell(self) -> None:
        self.page.open(self.upsell_dialog)

    def _show_message(self, message: str) -> None:
        self.page.open(ft.SnackBar(content=ft.Text(message)))
