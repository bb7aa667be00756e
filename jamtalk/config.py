"""
アプリケーション設定
"""
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)


def get_app_data_dir() -> Path:
    """
    アプリケーションのデータディレクトリを取得

    Returns:
        アプリケーションデータディレクトリのパス
    """
    if sys.platform == "win32":
        # Windowsの場合、AppData\Local\JamTalkを使用
        app_data: str | None = os.getenv("LOCALAPPDATA")
        if app_data:
            app_dir: Path = Path(app_data) / "JamTalk"
            app_dir.mkdir(exist_ok=True)
            return app_dir
    elif sys.platform == "darwin":
        # macOSの場合、~/Library/Application Support/JamTalkを使用
        app_support: Path = Path.home() / "Library" / "Application Support" / "JamTalk"
        app_support.mkdir(parents=True, exist_ok=True)
        return app_support
    # その他のOSまたはフォールバック
    return Path.home() / ".jamtalk"


def get_config_file() -> Path:
    """
    設定ファイルのパスを取得

    Returns:
        設定ファイルのパス
    """
    return get_app_data_dir() / "config.json"


def get_log_file() -> Path:
    """
    ログファイルのパスを取得

    Returns:
        ログファイルのパス
    """
    return get_app_data_dir() / "app.log"


def get_usage_file() -> Path:
    """
    利用状況フラグを保存するファイルのパスを取得

    Returns:
        フラグファイルのパス
    """
    return get_app_data_dir() / "usage.json"


def is_test_mode() -> bool:
    """
    テストモードかどうかを判定
    JAMTALK_TEST_MODE=true または JAMTALK_ENV=development の場合にテストモードとなる

    Returns:
        テストモードの場合True
    """
    if os.getenv("JAMTALK_TEST_MODE", "").lower() == "true":
        return True
    return os.getenv("JAMTALK_ENV", "").lower() == "development"


def get_session_seconds() -> int:
    """
    1回の練習の録音時間（秒）を取得

    Returns:
        録音時間（秒）、不正な値の場合はデフォルト値
    """
    raw: str | None = os.getenv("JAMTALK_SESSION_SECONDS")
    if not raw:
        return DEFAULT_SESSION_SECONDS
    try:
        seconds = int(raw)
    except ValueError:
        logger.warning("JAMTALK_SESSION_SECONDSが不正です: %s", raw)
        return DEFAULT_SESSION_SECONDS
    return seconds if seconds > 0 else DEFAULT_SESSION_SECONDS


def load_capture_error_messages(config_file: Path | None = None) -> Dict[str, str]:
    """
    音声認識エラー種別とユーザー向けメッセージの対応表を取得
    config.jsonの"capture_error_messages"で既定値を上書きできる

    Args:
        config_file: 設定ファイルのパス（指定しない場合はCONFIG_FILE）

    Returns:
        エラー種別 -> メッセージの辞書
    """
    messages: Dict[str, str] = dict(DEFAULT_CAPTURE_ERROR_MESSAGES)
    path: Path = config_file or CONFIG_FILE
    if not path.exists():
        return messages
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        overrides = data.get("capture_error_messages", {}) if isinstance(data, dict) else {}
        if isinstance(overrides, dict):
            messages.update({str(k): str(v) for k, v in overrides.items()})
    except (OSError, ValueError) as e:
        logger.warning("設定ファイルの読み込みに失敗しました: %s", e)
    return messages


# 無料で練習できる回数
FREE_LIMIT = 2

# 録音時間の既定値（以前は60秒）
DEFAULT_SESSION_SECONDS = 30

# 録音停止後、音声認識が残りの確定結果を返し終えるまで待つ最大秒数
CAPTURE_END_TIMEOUT_SECONDS = 3.0

# お題の単語
PROMPT_WORDS = [
    "music", "travel", "technology", "food", "hobby", "friendship", "future", "dream",
    "challenge", "success", "nature", "book", "movie", "family", "holiday", "memory",
    "adventure", "learning", "change", "goal",
]

# 音声認識エラー種別ごとのメッセージ
DEFAULT_CAPTURE_ERROR_MESSAGES: Dict[str, str] = {
    "not-allowed": "Microphone access denied. Please allow microphone access and try again.",
    "no-speech": "No speech detected. Please speak clearly and try again.",
    "network": "Network error. Please check your internet connection.",
    "audio-capture": "No microphone was found. Please connect a microphone and try again.",
}
GENERIC_CAPTURE_ERROR_TEMPLATE = "Speech recognition error: {kind}"

ANALYSIS_FAILED_MESSAGE = "Analysis failed. Please try again."
SCRIPT_FAILED_MESSAGE = "Sorry, we couldn't create a script right now. Please try again later."
NARRATION_FAILED_MESSAGE = "Audio generation failed. Please try again."

# 読み上げ音声
NARRATION_VOICES = ("alloy", "echo", "fable", "onyx", "nova", "shimmer")
MIN_NARRATION_SPEED = 0.25
MAX_NARRATION_SPEED = 4.0

# Azure Speechの認識言語
RECOGNITION_LANGUAGE = "en-US"

# アプリケーションデータディレクトリ
APP_DATA_DIR = get_app_data_dir()

# 設定ファイル
CONFIG_FILE = get_config_file()

# ログファイル
LOG_FILE = get_log_file()

# 利用状況フラグファイル
USAGE_FILE = get_usage_file()
