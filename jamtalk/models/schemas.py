"""
データモデル（スキーマ定義）
"""

from enum import Enum
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field

from jamtalk.config import MAX_NARRATION_SPEED, MIN_NARRATION_SPEED


class SessionState(str, Enum):
    """練習セッションの状態"""

    IDLE = "idle"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"


class PlaybackState(str, Enum):
    """読み上げ再生の状態"""

    IDLE = "idle"
    GENERATING = "generating"
    PLAYING = "playing"
    STOPPED = "stopped"
    ERRORED = "errored"


class NarrationVoice(str, Enum):
    """読み上げに使用できる音声"""

    ALLOY = "alloy"
    ECHO = "echo"
    FABLE = "fable"
    ONYX = "onyx"
    NOVA = "nova"
    SHIMMER = "shimmer"


class GrammarItem(BaseModel):
    """文法の指摘"""

    model_config = ConfigDict(frozen=True)

    original: str = ""  # 元の文
    suggestion: str = ""  # 修正案
    explanation: str = ""  # 解説


class VocabularyItem(BaseModel):
    """語彙の言い換え提案"""

    model_config = ConfigDict(frozen=True)

    original: str = ""
    suggestion: str = ""


class PronunciationItem(BaseModel):
    """発音のヒント"""

    model_config = ConfigDict(frozen=True)

    word: str = ""
    problem: str = ""
    tip: str = ""


class FeedbackDocument(BaseModel):
    """AIフィードバックの解析結果（生成後は変更されない）"""

    model_config = ConfigDict(frozen=True)

    original_transcript: str = ""
    grammar_items: Tuple[GrammarItem, ...] = ()
    vocabulary_items: Tuple[VocabularyItem, ...] = ()
    pronunciation_items: Tuple[PronunciationItem, ...] = ()
    summary: str = ""

    @property
    def is_empty(self) -> bool:
        """すべての項目が空かどうか"""
        return not (
            self.original_transcript
            or self.grammar_items
            or self.vocabulary_items
            or self.pronunciation_items
            or self.summary
        )


class UsageStats(BaseModel):
    """利用状況（アップセル表示用）"""

    attempt_count: int = 0
    remaining_free: float = 0  # サブスクリプション中は無限大
    is_subscribed: bool = False
    can_attempt: bool = True
    has_exceeded_limit: bool = False


class TranscriptUpdate(BaseModel):
    """音声認識の途中経過イベント"""

    result_index: int = 0
    final_segments: Tuple[str, ...] = ()  # 確定した文字列
    interim: str | None = None  # 未確定の文字列


class SessionSnapshot(BaseModel):
    """UIに渡すセッション状態のスナップショット"""

    model_config = ConfigDict(frozen=True)

    prompt_word: str = ""
    state: SessionState = SessionState.IDLE
    final_transcript: str = ""
    interim_transcript: str = ""
    remaining_seconds: int = 0
    feedback: FeedbackDocument | None = None
    feedback_error: str | None = None  # 分析失敗時のメッセージ
    error_message: str | None = None  # 音声認識エラー時のメッセージ

    @property
    def display_transcript(self) -> str:
        """画面に表示する書き起こし（確定 + 未確定）"""
        return self.final_transcript + self.interim_transcript


class NarrationRequest(BaseModel):
    """読み上げリクエスト"""

    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=1)
    voice: NarrationVoice = NarrationVoice.ALLOY
    speed: float = Field(default=1.0, ge=MIN_NARRATION_SPEED, le=MAX_NARRATION_SPEED)


class ApiStatus(BaseModel):
    """外部APIの利用可否"""

    name: str
    status: str  # "available" / "unknown" / "error"
    message: str = ""
