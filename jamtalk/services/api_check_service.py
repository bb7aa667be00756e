"""
API接続チェックサービス
フィードバック生成と音声認識に必要なAPIの設定状態をチェックする
"""
import os
from typing import List

import azure.cognitiveservices.speech as speechsdk
from openai import OpenAI

from jamtalk.models.schemas import ApiStatus


class APICheckService:
    """API接続状態をチェックするサービスクラス"""

    def check_openai_api(self) -> ApiStatus:
        """
        OpenAI APIの接続状態をチェック

        Returns:
            API状態
        """
        name = "OpenAI API"
        # OPENAI_API_KEYまたはOPENAI_APIのどちらかをサポート
        api_key: str | None = os.getenv("OPENAI_API_KEY") or os.getenv("OPENAI_API")
        if not api_key:
            return ApiStatus(name=name, status="unknown", message="API key is not set.")

        try:
            client = OpenAI(api_key=api_key)
            # models.list()で接続確認
            client.models.list()
        except Exception as e:
            return ApiStatus(name=name, status="error", message=f"Connection error: {e}")
        return ApiStatus(name=name, status="available", message="Feedback and scripts are available.")

    def check_azure_speech_api(self) -> ApiStatus:
        """
        Azure Speech Service APIの設定状態をチェック

        Returns:
            API状態
        """
        name = "Azure Speech Service API"
        speech_key: str | None = os.getenv("AZURE_SPEECH_KEY")
        speech_region: str | None = os.getenv("AZURE_SPEECH_REGION")

        if not speech_key or not speech_region:
            return ApiStatus(name=name, status="unknown", message="Key or region is not set.")

        try:
            speechsdk.SpeechConfig(subscription=speech_key, region=speech_region)
        except Exception as e:
            return ApiStatus(name=name, status="error", message=f"Configuration error: {e}")
        return ApiStatus(name=name, status="available", message="Live transcription is available.")

    def check_all_apis(self) -> List[ApiStatus]:
        """
        全てのAPIの状態をチェック

        Returns:
            API状態のリスト
        """
        return [self.check_openai_api(), self.check_azure_speech_api()]
