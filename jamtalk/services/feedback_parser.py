"""
フィードバック解析サービス
言語モデルが返す区切り記号付きテキストを構造化データに変換する

出力形式はプロンプト上の約束事にすぎないため、解析は常に成功させる。
認識できない行は無視し、見つからないセクションは空のままにする。
"""
import logging
import re
from enum import Enum
from typing import Dict, Iterator, List, Sequence, Tuple

from jamtalk.models.schemas import (
    FeedbackDocument,
    GrammarItem,
    PronunciationItem,
    VocabularyItem,
)

logger = logging.getLogger(__name__)

# 絵文字の異体字セレクタ（付いていてもいなくてもよい）
VARIATION_SELECTOR = "\ufe0f"


class FeedbackSection(str, Enum):
    """フィードバックのセクション種別"""

    ORIGINAL_TRANSCRIPT = "original_transcript"
    GRAMMAR = "grammar"
    VOCABULARY = "vocabulary"
    PRONUNCIATION = "pronunciation"
    SUMMARY = "summary"


# セクション開始記号とセクション種別の対応（順序付き）
SECTION_MARKERS: List[Tuple[str, FeedbackSection]] = [
    ("🌿", FeedbackSection.ORIGINAL_TRANSCRIPT),
    ("✏", FeedbackSection.GRAMMAR),  # ✏️
    ("💬", FeedbackSection.VOCABULARY),
    ("🔈", FeedbackSection.PRONUNCIATION),
    ("⭐", FeedbackSection.SUMMARY),  # ⭐️
]

# 記号の直後に付く見出し（あれば取り除く）
SECTION_TITLES: Dict[FeedbackSection, Tuple[str, ...]] = {
    FeedbackSection.ORIGINAL_TRANSCRIPT: ("原始转录",),
    FeedbackSection.GRAMMAR: ("语法建议",),
    FeedbackSection.VOCABULARY: ("词汇升级",),
    FeedbackSection.PRONUNCIATION: ("发音提示",),
    FeedbackSection.SUMMARY: ("一句话总结",),
}

# 項目ごとの小見出し（記号, ラベル, フィールド名）。先頭の要素が新しい項目の開始を表す
ITEM_MARKERS: Dict[FeedbackSection, Tuple[Tuple[str, str, str], ...]] = {
    FeedbackSection.GRAMMAR: (
        ("❌", "原句", "original"),
        ("✅", "建议", "suggestion"),
        ("💡", "解释", "explanation"),
    ),
    FeedbackSection.VOCABULARY: (
        ("❌", "原词", "original"),
        ("✅", "建议", "suggestion"),
    ),
    FeedbackSection.PRONUNCIATION: (
        ("", "单词", "word"),
        ("❌", "问题", "problem"),
        ("✅", "中文提示", "tip"),
    ),
}

# 行頭の箇条書き記号や番号
_BULLET = r"^[\s\-*•·\d.)）]*"
# ラベルの後ろの（中文）などの補足
_PAREN = r"(?:\s*[（(][^）)\n]*[）)])?"


def _emoji_pattern(emoji: str) -> str:
    """異体字セレクタを任意とした絵文字の正規表現"""
    base: str = emoji.replace(VARIATION_SELECTOR, "")
    return re.escape(base) + VARIATION_SELECTOR + "?"


class FeedbackParser:
    """区切り記号付きフィードバックテキストの解析クラス"""

    def __init__(
        self,
        section_markers: Sequence[Tuple[str, FeedbackSection]] = SECTION_MARKERS,
    ) -> None:
        """
        初期化処理

        Args:
            section_markers: セクション開始記号とセクション種別の対応
        """
        self._sections: Dict[str, FeedbackSection] = {
            marker.replace(VARIATION_SELECTOR, ""): section
            for marker, section in section_markers
        }
        alternatives = "|".join(_emoji_pattern(marker) for marker, _ in section_markers)
        self._marker_re: re.Pattern[str] = re.compile(f"(?:{alternatives})")
        self._title_res: Dict[FeedbackSection, re.Pattern[str]] = {
            section: re.compile(
                r"^\s*(?:" + "|".join(re.escape(t) for t in titles) + r")" + _PAREN + r"\s*[:：]?"
            )
            for section, titles in SECTION_TITLES.items()
        }
        self._item_res: Dict[FeedbackSection, List[Tuple[str, re.Pattern[str]]]] = {
            section: [
                (
                    field,
                    re.compile(
                        _BULLET
                        + (_emoji_pattern(emoji) + r"\s*" if emoji else "")
                        + re.escape(label)
                        + _PAREN
                        + r"\s*[:：]"
                    ),
                )
                for emoji, label, field in markers
            ]
            for section, markers in ITEM_MARKERS.items()
        }

    def parse(self, raw: str) -> FeedbackDocument:
        """
        フィードバックテキストを解析する（例外は送出しない）

        Args:
            raw: 言語モデルが返したテキスト

        Returns:
            解析結果。見つからなかった項目は空
        """
        if not isinstance(raw, str) or not raw:
            return FeedbackDocument()
        try:
            return self._build(raw)
        except Exception:
            logger.exception("フィードバックの解析に失敗しました")
            return FeedbackDocument()

    def scan(self, raw: str) -> Iterator[Tuple[FeedbackSection, str]]:
        """
        セクション記号で分割し、(セクション種別, 本文) を順に返す
        最初の記号より前のテキストは無視する

        Args:
            raw: 言語モデルが返したテキスト
        """
        matches = list(self._marker_re.finditer(raw))
        for i, match in enumerate(matches):
            end: int = matches[i + 1].start() if i + 1 < len(matches) else len(raw)
            marker: str = match.group(0).replace(VARIATION_SELECTOR, "")
            yield self._sections[marker], raw[match.end():end]

    def _build(self, raw: str) -> FeedbackDocument:
        texts: Dict[FeedbackSection, str] = {}
        items: Dict[FeedbackSection, List[Dict[str, str]]] = {}

        # 同じセクションが複数回ある場合は後のものを採用する
        for section, fragment in self.scan(raw):
            body: str = self._strip_title(section, fragment)
            if section in self._item_res:
                items[section] = self._extract_items(section, body)
            else:
                texts[section] = body

        return FeedbackDocument(
            original_transcript=texts.get(FeedbackSection.ORIGINAL_TRANSCRIPT, ""),
            grammar_items=tuple(
                GrammarItem(**item) for item in items.get(FeedbackSection.GRAMMAR, [])
            ),
            vocabulary_items=tuple(
                VocabularyItem(**item) for item in items.get(FeedbackSection.VOCABULARY, [])
            ),
            pronunciation_items=tuple(
                PronunciationItem(**item)
                for item in items.get(FeedbackSection.PRONUNCIATION, [])
            ),
            summary=texts.get(FeedbackSection.SUMMARY, ""),
        )

    def _strip_title(self, section: FeedbackSection, fragment: str) -> str:
        """セクション見出しを取り除いた本文を返す"""
        title_re = self._title_res.get(section)
        if title_re:
            fragment = title_re.sub("", fragment, count=1)
        return fragment.strip()

    def _extract_items(self, section: FeedbackSection, body: str) -> List[Dict[str, str]]:
        """
        小見出しを手がかりに項目を抽出する

        Args:
            section: セクション種別
            body: セクション本文

        Returns:
            フィールド名 -> 値 の辞書のリスト
        """
        patterns = self._item_res[section]
        opening_field: str = patterns[0][0]
        results: List[Dict[str, str]] = []
        current: Dict[str, str] = {}

        for line in body.splitlines():
            if not line.strip():
                continue
            for field, pattern in patterns:
                match = pattern.match(line)
                if not match:
                    continue
                if field == opening_field and current:
                    results.append(current)
                    current = {}
                current[field] = line[match.end():].strip()
                break

        if current:
            results.append(current)
        # すべて空の項目は捨てる
        return [item for item in results if any(item.values())]
