"""
利用状況サービス
無料枠の消費回数とサブスクリプション状態を管理する

ストレージが利用できない場合は既定値（0回、未契約）として扱う。
ストレージがブロックされた環境でも練習を続けられる代わりに、
課金ゲートは甘くなる（既知のトレードオフ）。
"""
import logging
import math
import random
import string
import time

from jamtalk.config import FREE_LIMIT, is_test_mode
from jamtalk.exceptions import ResetNotAllowedError
from jamtalk.models.schemas import UsageStats
from jamtalk.services.storage_service import LocalStorageService

logger = logging.getLogger(__name__)

USAGE_COUNT_KEY = "jamtalk_usage_count"
LAST_RESET_KEY = "jamtalk_last_reset"
SUBSCRIPTION_STATUS_KEY = "jamtalk_subscription_status"
USER_ID_KEY = "jamtalk_user_id"


class UsageMeter:
    """無料枠の利用回数を計測するサービスクラス"""

    def __init__(
        self,
        storage: LocalStorageService,
        free_limit: int = FREE_LIMIT,
        allow_reset: bool | None = None,
    ) -> None:
        """
        初期化処理

        Args:
            storage: フラグを保存するストレージ
            free_limit: 無料で練習できる回数
            allow_reset: リセットを許可するか（指定しない場合はテストモードかどうかで判定）
        """
        self.storage = storage
        self.free_limit = free_limit
        self.allow_reset: bool = is_test_mode() if allow_reset is None else allow_reset

    def get_usage_count(self) -> int:
        """現在の利用回数を取得"""
        raw: str | None = self.storage.get(USAGE_COUNT_KEY)
        if not raw:
            return 0
        try:
            return max(0, int(raw))
        except ValueError:
            logger.warning("利用回数の値が不正です: %s", raw)
            return 0

    def is_subscribed(self) -> bool:
        """サブスクリプションが有効か"""
        return self.storage.get(SUBSCRIPTION_STATUS_KEY) == "active"

    def can_attempt(self) -> bool:
        """練習を開始できるか（契約中または無料枠が残っている）"""
        return self.is_subscribed() or self.get_usage_count() < self.free_limit

    def has_exceeded_free_limit(self) -> bool:
        """無料枠を使い切ったか"""
        return not self.is_subscribed() and self.get_usage_count() >= self.free_limit

    def get_remaining_free(self) -> float:
        """残りの無料回数（契約中は無限大）"""
        if self.is_subscribed():
            return math.inf
        return max(0, self.free_limit - self.get_usage_count())

    def get_stats(self) -> UsageStats:
        """
        表示用の利用状況を取得

        Returns:
            利用状況
        """
        count: int = self.get_usage_count()
        subscribed: bool = self.is_subscribed()
        return UsageStats(
            attempt_count=count,
            remaining_free=math.inf if subscribed else max(0, self.free_limit - count),
            is_subscribed=subscribed,
            can_attempt=subscribed or count < self.free_limit,
            has_exceeded_limit=not subscribed and count >= self.free_limit,
        )

    def record_attempt(self) -> int:
        """
        利用回数を1増やして保存する

        Returns:
            更新後の利用回数
        """
        new_count: int = self.get_usage_count() + 1
        self.storage.set(USAGE_COUNT_KEY, str(new_count))
        logger.info("練習回数を記録しました: %d", new_count)
        return new_count

    def set_subscription(self, active: bool) -> None:
        """
        サブスクリプション状態を保存する（決済成功時に呼ばれる）

        Args:
            active: 有効ならTrue
        """
        self.storage.set(SUBSCRIPTION_STATUS_KEY, "active" if active else "inactive")

    def reset(self) -> None:
        """
        利用回数を0に戻す（テスト・デバッグ用）

        Raises:
            ResetNotAllowedError: テストモード以外で呼ばれた場合
        """
        if not self.allow_reset:
            raise ResetNotAllowedError("利用回数のリセットはテストモードでのみ可能です")
        self.storage.set(USAGE_COUNT_KEY, "0")
        self.storage.set(LAST_RESET_KEY, str(int(time.time() * 1000)))
        logger.info("利用回数をリセットしました")

    def get_user_id(self) -> str:
        """
        匿名ユーザーIDを取得（なければ生成して保存）

        Returns:
            ユーザーID
        """
        user_id: str | None = self.storage.get(USER_ID_KEY)
        if not user_id:
            suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
            user_id = f"user_{int(time.time() * 1000)}_{suffix}"
            self.storage.set(USER_ID_KEY, user_id)
        return user_id
