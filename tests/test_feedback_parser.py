"""
FeedbackParserのテスト
"""
import pytest
from jamtalk.services.feedback_parser import FeedbackParser, FeedbackSection
from jamtalk.models.schemas import FeedbackDocument, GrammarItem


FULL_FEEDBACK = """🌿 原始转录：
I go to school yesterday and I very like it.

✏️ 语法建议：
1. ❌ 原句：I go to school yesterday
   ✅ 建议：I went to school yesterday
   💡 解释：过去发生的事情要用过去式。
2. ❌ 原句：I very like it
   ✅ 建议：I really like it
   💡 解释：very 不能直接修饰动词。

💬 词汇升级：
- ❌ 原词：very good
  ✅ 建议：excellent
- ❌ 原词：big
  ✅ 建议：enormous

🔈 发音提示：
- 单词：think
  ❌ 问题：th 发成了 s
  ✅ 中文提示：舌尖轻触上齿再送气

⭐️ 一句话总结（中文）：整体表达清楚，注意动词时态。
"""


class TestFeedbackParser:
    """FeedbackParserのテストクラス"""

    @pytest.fixture
    def parser(self):
        """FeedbackParserのインスタンスを作成"""
        return FeedbackParser()

    def test_parse_minimal_blob(self, parser):
        """最小限のフィードバックを解析"""
        result = parser.parse("🌿 X\n✏️ Y\n❌ 原句: A\n✅ 建议: B")

        assert result.original_transcript == "X"
        assert result.grammar_items == (GrammarItem(original="A", suggestion="B", explanation=""),)
        assert result.vocabulary_items == ()
        assert result.pronunciation_items == ()
        assert result.summary == ""

    def test_parse_single_grammar_item(self, parser):
        """文法の指摘が1件の場合、各記号の後ろの文字列がそのまま入る"""
        raw = "✏️ 语法建议：\n❌ 原句：She don't know\n✅ 建议：She doesn't know\n💡 解释：第三人称单数"

        result = parser.parse(raw)

        assert len(result.grammar_items) == 1
        item = result.grammar_items[0]
        assert item.original == "She don't know"
        assert item.suggestion == "She doesn't know"
        assert item.explanation == "第三人称单数"

    def test_parse_full_feedback(self, parser):
        """すべてのセクションを含むフィードバックを解析"""
        result = parser.parse(FULL_FEEDBACK)

        assert result.original_transcript == "I go to school yesterday and I very like it."
        assert len(result.grammar_items) == 2
        assert result.grammar_items[1].original == "I very like it"
        assert result.grammar_items[1].explanation == "very 不能直接修饰动词。"
        assert [v.suggestion for v in result.vocabulary_items] == ["excellent", "enormous"]
        assert len(result.pronunciation_items) == 1
        pronunciation = result.pronunciation_items[0]
        assert pronunciation.word == "think"
        assert pronunciation.problem == "th 发成了 s"
        assert pronunciation.tip == "舌尖轻触上齿再送气"
        assert result.summary == "整体表达清楚，注意动词时态。"

    def test_parse_without_variation_selector(self, parser):
        """異体字セレクタなしの記号も認識する"""
        raw = "✏ 语法建议:\n❌ 原句: A\n✅ 建议: B\n⭐ 一句话总结: good"

        result = parser.parse(raw)

        assert len(result.grammar_items) == 1
        assert result.summary == "good"

    @pytest.mark.parametrize("raw", ["", "Hello, no markers here.", "❌ 原句: orphan", "✏️", "🌿"])
    def test_parse_is_total(self, parser, raw):
        """どのような入力でも例外を出さず、すべての項目が定義される"""
        result = parser.parse(raw)

        assert isinstance(result, FeedbackDocument)
        assert result.original_transcript == ""
        assert result.grammar_items == ()
        assert result.vocabulary_items == ()
        assert result.pronunciation_items == ()
        assert result.summary == ""
        assert result.is_empty

    def test_parse_non_string(self, parser):
        """文字列以外はそのまま空のドキュメント"""
        assert parser.parse(None).is_empty

    def test_text_before_first_marker_is_ignored(self, parser):
        """最初の記号より前の文字列は無視する"""
        result = parser.parse("Sure! Here is your feedback.\n🌿 hello world")

        assert result.original_transcript == "hello world"

    def test_duplicate_section_uses_last(self, parser):
        """同じセクションが2回ある場合は後のものを採用"""
        result = parser.parse("⭐️ first\n⭐️ second")

        assert result.summary == "second"

    def test_item_with_only_blank_values_is_dropped(self, parser):
        """値がすべて空の項目は捨てる"""
        result = parser.parse("💬 词汇升级：\n❌ 原词：\n✅ 建议：")

        assert result.vocabulary_items == ()

    def test_scan_yields_sections_in_order(self, parser):
        """セクションを出現順に返す"""
        sections = [section for section, _ in parser.scan(FULL_FEEDBACK)]

        assert sections == [
            FeedbackSection.ORIGINAL_TRANSCRIPT,
            FeedbackSection.GRAMMAR,
            FeedbackSection.VOCABULARY,
            FeedbackSection.PRONUNCIATION,
            FeedbackSection.SUMMARY,
        ]

    def test_parse_handles_internal_error(self, parser, monkeypatch):
        """内部エラーが起きても空のドキュメントを返す"""
        def broken(raw):
            raise RuntimeError("boom")

        monkeypatch.setattr(parser, "_build", broken)

        assert parser.parse("🌿 X").is_empty
