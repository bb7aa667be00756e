"""
評価サービス
フィードバック生成と解析をまとめて実行する
"""
import logging

from jamtalk.models.schemas import FeedbackDocument
from jamtalk.services.feedback_parser import FeedbackParser
from jamtalk.services.openai_service import OpenAIService

logger = logging.getLogger(__name__)


class EvaluationService:
    """発話の評価を統合的に実行するサービスクラス"""

    def __init__(
        self,
        openai_service: OpenAIService | None = None,
        parser: FeedbackParser | None = None,
    ) -> None:
        """
        初期化処理

        Args:
            openai_service: OpenAIサービス（指定しない場合は新規作成）
            parser: フィードバック解析クラス（指定しない場合は新規作成）
        """
        self.openai_service: OpenAIService = openai_service or OpenAIService()
        self.parser: FeedbackParser = parser or FeedbackParser()

    async def evaluate_transcript(self, transcript: str) -> FeedbackDocument | None:
        """
        書き起こしを評価し、構造化されたフィードバックを返す

        Args:
            transcript: ユーザーの発話の書き起こし

        Returns:
            フィードバック、生成に失敗した場合はNone
        """
        raw: str | None = await self.openai_service.analyze_transcript(transcript)
        if not raw:
            return None
        document: FeedbackDocument = self.parser.parse(raw)
        logger.info(
            "フィードバックを解析しました (文法: %d, 語彙: %d, 発音: %d)",
            len(document.grammar_items),
            len(document.vocabulary_items),
            len(document.pronunciation_items),
        )
        return document
