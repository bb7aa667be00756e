"""
決済サービス
サブスクリプション購入は外部の決済ページに任せ、成功時の通知だけを受け取る
"""
import logging
import os
import webbrowser
from urllib.parse import urlencode

from jamtalk.config import is_test_mode
from jamtalk.exceptions import CheckoutError
from jamtalk.services.usage_service import UsageMeter

logger = logging.getLogger(__name__)


class CheckoutService:
    """決済ページへの遷移とサブスクリプション反映を行うサービスクラス"""

    def __init__(self, usage_meter: UsageMeter, test_mode: bool | None = None) -> None:
        """
        初期化処理

        Args:
            usage_meter: 利用状況サービス
            test_mode: テスト用の決済ページを使うか（指定しない場合は環境変数から判定）
        """
        self.usage_meter = usage_meter
        self.test_mode: bool = is_test_mode() if test_mode is None else test_mode

    def get_checkout_url(self, plan_id: str) -> str:
        """
        決済ページのURLを作成

        Args:
            plan_id: プランID

        Returns:
            決済ページのURL

        Raises:
            CheckoutError: 決済ページのURLが設定されていない場合
        """
        base_url: str | None = None
        if self.test_mode:
            base_url = os.getenv("JAMTALK_CHECKOUT_URL_TEST")
        base_url = base_url or os.getenv("JAMTALK_CHECKOUT_URL")
        if not base_url:
            raise CheckoutError("決済ページのURL（JAMTALK_CHECKOUT_URL）が設定されていません")

        query: str = urlencode({"plan": plan_id, "client_reference_id": self.usage_meter.get_user_id()})
        separator = "&" if "?" in base_url else "?"
        return f"{base_url}{separator}{query}"

    def start_checkout(self, plan_id: str) -> str:
        """
        ブラウザで決済ページを開く

        Args:
            plan_id: プランID

        Returns:
            開いたURL

        Raises:
            CheckoutError: URL未設定、またはブラウザを開けなかった場合
        """
        url: str = self.get_checkout_url(plan_id)
        logger.info("決済ページを開きます (%s)", "TEST" if self.test_mode else "LIVE")
        try:
            opened: bool = webbrowser.open(url)
        except webbrowser.Error as e:
            raise CheckoutError(f"ブラウザを開けませんでした: {e}") from e
        if not opened:
            raise CheckoutError("ブラウザを開けませんでした")
        return url

    def handle_success(self) -> None:
        """決済成功時にサブスクリプションを有効にする"""
        self.usage_meter.set_subscription(True)
        logger.info("サブスクリプションを有効にしました")
