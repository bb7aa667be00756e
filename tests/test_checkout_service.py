"""
CheckoutServiceのテスト
"""
import os
import webbrowser
import pytest
from unittest.mock import Mock, patch
from jamtalk.exceptions import CheckoutError
from jamtalk.services.checkout_service import CheckoutService


LIVE_URL = "https://pay.example.com/live"
TEST_URL = "https://pay.example.com/test?locale=en"


class TestCheckoutService:
    """CheckoutServiceのテストクラス"""

    @pytest.fixture
    def usage_meter(self):
        meter = Mock()
        meter.get_user_id.return_value = "user_1_abc"
        return meter

    @patch.dict(os.environ, {"JAMTALK_CHECKOUT_URL": LIVE_URL, "JAMTALK_CHECKOUT_URL_TEST": TEST_URL})
    def test_live_url(self, usage_meter):
        """本番モードでは本番の決済ページ"""
        service = CheckoutService(usage_meter, test_mode=False)

        url = service.get_checkout_url("monthly")

        assert url == f"{LIVE_URL}?plan=monthly&client_reference_id=user_1_abc"

    @patch.dict(os.environ, {"JAMTALK_CHECKOUT_URL": LIVE_URL, "JAMTALK_CHECKOUT_URL_TEST": TEST_URL})
    def test_test_url(self, usage_meter):
        """テストモードではテスト用の決済ページ"""
        service = CheckoutService(usage_meter, test_mode=True)

        url = service.get_checkout_url("monthly")

        assert url.startswith(f"{TEST_URL}&plan=monthly")

    @patch.dict(os.environ, {"JAMTALK_CHECKOUT_URL": LIVE_URL}, clear=True)
    def test_test_mode_falls_back_to_live_url(self, usage_meter):
        """テスト用URLがなければ本番URL"""
        service = CheckoutService(usage_meter, test_mode=True)

        assert service.get_checkout_url("yearly").startswith(f"{LIVE_URL}?plan=yearly")

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_url(self, usage_meter):
        """URLが未設定ならCheckoutError"""
        service = CheckoutService(usage_meter, test_mode=False)

        with pytest.raises(CheckoutError):
            service.start_checkout("monthly")

    @patch.dict(os.environ, {"JAMTALK_CHECKOUT_URL": LIVE_URL})
    @patch("jamtalk.services.checkout_service.webbrowser.open", return_value=True)
    def test_start_checkout(self, mock_open, usage_meter):
        """ブラウザで決済ページを開く"""
        service = CheckoutService(usage_meter, test_mode=False)

        url = service.start_checkout("monthly")

        mock_open.assert_called_once_with(url)
        usage_meter.set_subscription.assert_not_called()

    @patch.dict(os.environ, {"JAMTALK_CHECKOUT_URL": LIVE_URL})
    @pytest.mark.parametrize("outcome", [False, webbrowser.Error("no browser")])
    def test_start_checkout_browser_failure(self, usage_meter, outcome):
        """ブラウザを開けない場合はCheckoutError"""
        service = CheckoutService(usage_meter, test_mode=False)
        kwargs = {"side_effect": outcome} if isinstance(outcome, Exception) else {"return_value": outcome}

        with patch("jamtalk.services.checkout_service.webbrowser.open", **kwargs):
            with pytest.raises(CheckoutError):
                service.start_checkout("monthly")

    def test_handle_success(self, usage_meter):
        """決済成功でサブスクリプションを有効にする"""
        service = CheckoutService(usage_meter, test_mode=False)

        service.handle_success()

        usage_meter.set_subscription.assert_called_once_with(True)

    @patch.dict(os.environ, {"JAMTALK_ENV": "development"}, clear=True)
    def test_test_mode_from_env(self, usage_meter):
        """環境変数からテストモードを判定"""
        assert CheckoutService(usage_meter).test_mode is True
