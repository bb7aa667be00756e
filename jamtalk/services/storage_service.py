"""
ローカルストレージサービス
ユーザー認証不要で、利用状況のフラグをローカルファイルに保存する
"""
import json
import logging
from pathlib import Path
from typing import Dict

from jamtalk.config import USAGE_FILE

logger = logging.getLogger(__name__)


class LocalStorageService:
    """キーと値（文字列）をJSONファイルに保存・読み込むサービスクラス"""

    def __init__(self, file_path: Path | None = None) -> None:
        """
        初期化処理

        Args:
            file_path: 保存先ファイル（指定しない場合はUSAGE_FILE）
        """
        self.file_path: Path = file_path or USAGE_FILE

    def get(self, key: str) -> str | None:
        """
        値を読み込む

        Args:
            key: キー

        Returns:
            保存されている値、存在しない場合や読み込み失敗時はNone
        """
        return self._load().get(key)

    def set(self, key: str, value: str) -> bool:
        """
        値を保存する

        Args:
            key: キー
            value: 値

        Returns:
            保存成功時True、失敗時False
        """
        try:
            data: Dict[str, str] = self._load()
            data[key] = value
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.file_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            return True
        except Exception as e:
            logger.warning("フラグの保存に失敗しました (%s): %s", key, e)
            return False

    def _load(self) -> Dict[str, str]:
        """ファイル全体を読み込む（失敗時は空の辞書）"""
        try:
            if not self.file_path.exists():
                return {}
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                return {}
            return {str(k): str(v) for k, v in data.items()}
        except Exception as e:
            logger.warning("フラグの読み込みに失敗しました: %s", e)
            return {}
