"""
JAM Talk 英語スピーキング練習アプリ - メインエントリーポイント
"""
import logging
import sys
from pathlib import Path

import flet as ft
from dotenv import load_dotenv

from jamtalk.config import APP_DATA_DIR, LOG_FILE, RECOGNITION_LANGUAGE, is_test_mode
from jamtalk.gui.practice_window import PracticeWindow
from jamtalk.logger import setup_logger
from jamtalk.services.api_check_service import APICheckService
from jamtalk.services.checkout_service import CheckoutService
from jamtalk.services.coach_service import CoachOrchestrator
from jamtalk.services.evaluation_service import EvaluationService
from jamtalk.services.narration_service import NarrationPlayer, create_narration_provider
from jamtalk.services.openai_service import OpenAIService
from jamtalk.services.session_service import SpeechCaptureSession
from jamtalk.services.storage_service import LocalStorageService
from jamtalk.services.transcription_service import AzureLiveTranscriber
from jamtalk.services.usage_service import UsageMeter

# .envファイルの読み込み（実行ファイルのディレクトリまたはカレントディレクトリから）
if getattr(sys, 'frozen', False):
    # PyInstallerでビルドされた場合
    application_path = Path(sys.executable).parent
else:
    application_path = Path(__file__).parent

env_path = application_path / ".env"
if env_path.exists():
    load_dotenv(env_path)
else:
    load_dotenv()

logger: logging.Logger = setup_logger(log_file=LOG_FILE)

# 決済ページから戻るときのルート
CHECKOUT_SUCCESS_ROUTE = "/checkout/success"
CHECKOUT_CANCEL_ROUTE = "/checkout/cancel"


class App:
    """アプリケーションのメインクラス"""

    def __init__(self, page: ft.Page) -> None:
        """
        初期化処理

        Args:
            page: Fletのページオブジェクト
        """
        self.page = page
        self.page.title = "JAM Talk"
        self.page.window_min_width = 800
        self.page.window_min_height = 700
        self.page.theme_mode = ft.ThemeMode.LIGHT
        self.page.bgcolor = ft.colors.WHITE

        # アプリケーションデータディレクトリの作成
        APP_DATA_DIR.mkdir(parents=True, exist_ok=True)

        try:
            self.build_services()
        except ValueError as e:
            # APIキー未設定など
            logger.error("サービスの初期化に失敗しました: %s", e)
            self.show_setup_error(str(e))
            return
        logger.info("アプリを起動しました (test_mode=%s)", is_test_mode())

        self.page.on_route_change = self.on_route_change
        self.show_practice()

    def build_services(self) -> None:
        """サービスの組み立て"""
        storage = LocalStorageService()
        self.usage_meter = UsageMeter(storage)
        openai_service = OpenAIService()
        self.session = SpeechCaptureSession(
            transcriber=AzureLiveTranscriber(language=RECOGNITION_LANGUAGE),
            evaluation_service=EvaluationService(openai_service=openai_service),
            usage_meter=self.usage_meter,
        )
        narration_player = NarrationPlayer(create_narration_provider(openai_service=openai_service))
        self.coach = CoachOrchestrator(
            usage_meter=self.usage_meter,
            openai_service=openai_service,
            narration_player=narration_player,
            checkout_service=CheckoutService(self.usage_meter),
        )

    def show_setup_error(self, message: str) -> None:
        """設定エラー画面を表示"""
        self.page.clean()
        statuses = [
            ft.Text(f"{status.name}: {status.message}", size=14)
            for status in APICheckService().check_all_apis()
        ]
        self.page.add(
            ft.Container(
                content=ft.Column(
                    [
                        ft.Text("JAM Talk", size=32, weight=ft.FontWeight.BOLD),
                        ft.Text(message, size=16, color=ft.colors.RED),
                        *statuses,
                        ft.Text("Set the keys in your .env file and restart the app.", size=14),
                    ],
                    horizontal_alignment=ft.CrossAxisAlignment.CENTER,
                ),
                padding=40,
                expand=True,
            )
        )
        self.page.update()

    def show_practice(self) -> None:
        """練習画面を表示"""
        self.page.clean()
        self.window = PracticeWindow(
            self.page,
            session=self.session,
            coach=self.coach,
            api_check_service=APICheckService(),
        )
        self.window.build()

    def on_route_change(self, e: ft.RouteChangeEvent) -> None:
        """決済ページからの戻りを処理"""
        if e.route.startswith(CHECKOUT_SUCCESS_ROUTE):
            self.coach.complete_checkout(True)
            self.show_practice()
        elif e.route.startswith(CHECKOUT_CANCEL_ROUTE):
            self.coach.complete_checkout(False)


def main(page: ft.Page) -> None:
    """アプリケーションの起動"""
    App(page)


if __name__ == "__main__":
    ft.app(target=main)
