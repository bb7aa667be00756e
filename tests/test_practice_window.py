"""
PracticeWindowのテスト
"""
import pytest
from unittest.mock import Mock
import flet as ft
from jamtalk.exceptions import CheckoutError
from jamtalk.gui.practice_window import PracticeWindow
from jamtalk.models.schemas import (
    FeedbackDocument,
    GrammarItem,
    PlaybackState,
    SessionSnapshot,
    SessionState,
    UsageStats,
)


class TestPracticeWindow:
    """PracticeWindowのテストクラス"""

    @pytest.fixture
    def mock_page(self):
        """モックページを作成"""
        page = Mock(spec=ft.Page)
        page.update = Mock()
        page.add = Mock()
        page.open = Mock()
        page.close = Mock()
        return page

    @pytest.fixture
    def coach(self):
        coach = Mock()
        coach.pick_word.return_value = "music"
        coach.usage_meter.get_stats.return_value = UsageStats(attempt_count=1, remaining_free=1)
        coach.narration_player = Mock()
        coach.script = None
        coach.script_error = None
        coach.narration_enabled = False
        return coach

    @pytest.fixture
    def session(self):
        return Mock()

    @pytest.fixture
    def window(self, mock_page, session, coach):
        """PracticeWindowのインスタンスを作成"""
        return PracticeWindow(mock_page, session=session, coach=coach)

    def test_init_wires_callbacks(self, window, session, coach):
        """セッションと読み上げの通知先を登録する"""
        assert session.on_change == window._on_session_changed
        assert coach.on_upsell == window._show_upsell
        assert coach.narration_player.on_error == window._show_message
        assert window.word_text.value == "music"

    def test_build(self, window, mock_page):
        """画面を構築する"""
        window.build()

        mock_page.add.assert_called_once()
        assert window.usage_text.value == "Free practices left: 1"

    def test_capturing_snapshot(self, window):
        """録音中はカウントダウンと停止ボタンを表示"""
        window._on_session_changed(SessionSnapshot(
            prompt_word="music",
            state=SessionState.CAPTURING,
            final_transcript="I like",
            interim_transcript=" mus",
            remaining_seconds=25,
        ))

        assert window.timer_text.value == "25s"
        assert window.transcript_text.value == "I like mus"
        assert window.stop_button.visible is True
        assert window.start_button.visible is False

    def test_complete_snapshot_renders_feedback(self, window):
        """完了時はフィードバックのセクションを表示"""
        feedback = FeedbackDocument(
            original_transcript="I goes home",
            grammar_items=(GrammarItem(original="I goes home", suggestion="I go home"),),
            summary="注意主谓一致",
        )

        window._on_session_changed(SessionSnapshot(
            state=SessionState.COMPLETE,
            final_transcript="I goes home",
            feedback=feedback,
        ))

        assert len(window.feedback_column.controls) == 3
        assert window.start_button.text == "Practice again"

    def test_failed_snapshot_shows_error(self, window):
        """失敗時はエラーメッセージを表示"""
        window._on_session_changed(SessionSnapshot(
            state=SessionState.FAILED,
            error_message="Microphone access denied.",
        ))

        assert window.status_text.value == "Microphone access denied."
        assert window.feedback_column.controls == []

    def test_subscribed_usage(self, window, coach):
        """契約中の表示"""
        coach.usage_meter.get_stats.return_value = UsageStats(is_subscribed=True, remaining_free=float("inf"))

        window._update_usage()

        assert window.usage_text.value.startswith("⭐ Pro")

    def test_show_upsell(self, window, mock_page):
        window._show_upsell()

        mock_page.open.assert_called_once_with(window.upsell_dialog)

    def test_subscribe_opens_payment_confirmation(self, window, mock_page, coach):
        """決済ページを開いたら支払い完了の確認ダイアログを表示"""
        coach.subscribe.return_value = "https://buy.stripe.com/test"

        window._on_subscribe_clicked(Mock())

        mock_page.close.assert_called_once_with(window.upsell_dialog)
        coach.subscribe.assert_called_once_with(window.plan_id)
        mock_page.open.assert_called_once_with(window.checkout_dialog)

    def test_subscribe_failure_shows_message(self, window, mock_page, coach):
        """決済ページを開けない場合は確認ダイアログを出さない"""
        coach.subscribe.side_effect = CheckoutError("no url")

        window._on_subscribe_clicked(Mock())

        opened = mock_page.open.call_args[0][0]
        assert isinstance(opened, ft.SnackBar)
        assert opened is not window.checkout_dialog

    def test_payment_confirmed_activates_subscription(self, window, mock_page, coach):
        """支払い完了を確認すると契約を有効にし、表示を更新する"""
        coach.usage_meter.get_stats.return_value = UsageStats(is_subscribed=True, remaining_free=float("inf"))

        window._on_payment_confirmed(Mock())

        mock_page.close.assert_called_once_with(window.checkout_dialog)
        coach.complete_checkout.assert_called_once_with(True)
        assert window.usage_text.value.startswith("⭐ Pro")

    def test_payment_cancelled(self, window, mock_page, coach):
        """キャンセルした場合は契約を変更しない"""
        window._on_payment_cancelled(Mock())

        mock_page.close.assert_called_once_with(window.checkout_dialog)
        coach.complete_checkout.assert_called_once_with(False)

    def test_playback_state_changes_button(self, window):
        """読み上げ中は停止ボタンになる"""
        window._on_playback_changed(PlaybackState.PLAYING)
        assert window.listen_button.text == "■ Stop"

        window._on_playback_changed(PlaybackState.IDLE)
        assert window.listen_button.text == "▶ Listen"

    def test_render_script(self, window, coach):
        """原稿を取得したら読み上げ操作を表示"""
        coach.script = "Music keeps me going."
        coach.narration_enabled = True

        window._render_script()

        assert window.script_text.value == "Music keeps me going."
        assert window.narration_row.visible is True
        assert window.listen_button.disabled is False
