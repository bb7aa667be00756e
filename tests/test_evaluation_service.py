"""
EvaluationServiceのテスト
"""
import pytest
from unittest.mock import patch, Mock, AsyncMock
from jamtalk.services.evaluation_service import EvaluationService
from jamtalk.services.feedback_parser import FeedbackParser
from jamtalk.models.schemas import FeedbackDocument


class TestEvaluationService:
    """EvaluationServiceのテストクラス"""

    @pytest.fixture
    def openai_service(self):
        """OpenAIサービスのモック"""
        service = Mock()
        service.analyze_transcript = AsyncMock()
        return service

    @pytest.fixture
    def evaluation_service(self, openai_service):
        """EvaluationServiceのインスタンスを作成"""
        return EvaluationService(openai_service=openai_service)

    def test_init_creates_dependencies(self):
        """指定しない場合はOpenAIServiceとパーサーを作成する"""
        with patch("jamtalk.services.evaluation_service.OpenAIService") as mock_openai:
            service = EvaluationService()

        assert service.openai_service is mock_openai.return_value
        assert isinstance(service.parser, FeedbackParser)

    @pytest.mark.asyncio
    async def test_evaluate_transcript(self, evaluation_service, openai_service):
        """フィードバックを解析して返す"""
        openai_service.analyze_transcript.return_value = (
            "🌿 I goes home\n✏️\n❌ 原句: I goes home\n✅ 建议: I go home\n💡 解释: 主谓一致\n⭐️ 注意主谓一致"
        )

        result = await evaluation_service.evaluate_transcript("I goes home")

        assert isinstance(result, FeedbackDocument)
        assert result.original_transcript == "I goes home"
        assert result.grammar_items[0].suggestion == "I go home"
        assert result.summary == "注意主谓一致"
        openai_service.analyze_transcript.assert_awaited_once_with("I goes home")

    @pytest.mark.asyncio
    async def test_evaluate_transcript_failure(self, evaluation_service, openai_service):
        """フィードバック生成に失敗した場合はNone"""
        openai_service.analyze_transcript.return_value = None

        assert await evaluation_service.evaluate_transcript("Hello") is None

    @pytest.mark.asyncio
    async def test_evaluate_transcript_unstructured(self, evaluation_service, openai_service):
        """記号のない応答は空のドキュメント"""
        openai_service.analyze_transcript.return_value = "Sorry, I can't help with that."

        result = await evaluation_service.evaluate_transcript("Hello")

        assert result is not None
        assert result.is_empty
