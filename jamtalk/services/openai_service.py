"""
OpenAI APIサービス
"""

import logging
import os

from openai import AsyncOpenAI

from jamtalk.config import DEFAULT_SESSION_SECONDS
from jamtalk.exceptions import NarrationError

logger = logging.getLogger(__name__)

FEEDBACK_SYSTEM_PROMPT = "你是一个专业的英语口语教练。"

FEEDBACK_PROMPT = """你是一个专业的英语口语教练，请根据以下要求对用户的英语口语转录文本进行分析和反馈。

输出结构（严格遵守并使用中文讲解）:

🌿 原始转录
<逐字罗列用户文本，不做任何改动>

✏️ 语法建议

❌ 原句: ...
✅ 建议: ...
💡 解释（中文）: ...

(如有多句，则以上述格式逐一列出)

💬 词汇升级

❌ 原词: ...
✅ 建议: ... （中文释义: ...）

(如有多句，则以上述格式逐一列出)

🔈 发音提示

单词: ...
❌ 问题: /æ/ 发成 /e/
✅ 中文提示: 可以把口形放大，舌尖放低

⭐️ 一句话总结（中文）
<20 字内，给出最重要的改进方向>

额外要求
- 绝不修改「🌿 原始转录」区块的任何字符、大小写或标点。
- 每个建议都用简体中文解释，但保留必要英文单词/短语。
- 语法与词汇最多各列 3 条，发音最多 2 条，保证反馈精简易吸收。
- 若用户传来的文本不足 10 个单词，礼貌提醒他们再录一次（仍用中文）。
- 不回答与口语练习无关的问题；如有，礼貌引导回到下一轮关键词练习。

用户转录文本如下：
{transcript}"""

SCRIPT_SYSTEM_PROMPT = (
    "You are a native English speaker creating natural, conversational scripts "
    "for English language learners."
)

SCRIPT_PROMPT = """You are a native English speaker helping non-native speakers practice English.

Create a {seconds}-second natural speaking script about the word "{word}".

Requirements:
- Write in a conversational, natural tone as if you're a native English speaker
- Include personal thoughts, experiences, or opinions about the topic
- Use varied sentence structures and natural transitions
- Include some common phrases and idioms that native speakers use
- The script should be exactly the right length for a {seconds}-second natural speech
- Make it engaging and relatable
- Use vocabulary and expressions that are natural for native speakers

Topic: {word}

Please write a script that sounds like a native English speaker talking naturally about this topic:"""


class OpenAIService:
    """OpenAI APIを使用するサービスクラス"""

    def __init__(self) -> None:
        """
        初期化処理
        環境変数からAPIキーを取得し、OpenAIクライアントを初期化する
        """
        # OPENAI_API_KEYまたはOPENAI_APIのどちらかをサポート
        api_key: str | None = os.getenv("OPENAI_API_KEY") or os.getenv("OPENAI_API")
        if not api_key:
            raise ValueError(
                "OPENAI_API_KEYまたはOPENAI_API環境変数が設定されていません"
            )
        self.client: AsyncOpenAI = AsyncOpenAI(api_key=api_key)
        self.model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.tts_model: str = os.getenv("OPENAI_TTS_MODEL", "tts-1")

    async def analyze_transcript(self, transcript: str) -> str | None:
        """
        書き起こしテキストを分析し、区切り記号付きのフィードバックを生成

        Args:
            transcript: ユーザーの発話の書き起こし

        Returns:
            フィードバックテキスト、失敗時はNone
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": FEEDBACK_SYSTEM_PROMPT},
                    {"role": "user", "content": FEEDBACK_PROMPT.format(transcript=transcript)},
                ],
                max_tokens=800,
            )
            content: str | None = response.choices[0].message.content
            if not content:
                logger.warning("フィードバックのレスポンスが空です")
                return None
            return content
        except Exception as e:
            logger.error("フィードバック生成エラー: %s", e)
            return None

    async def generate_script(
        self, word: str, seconds: int = DEFAULT_SESSION_SECONDS
    ) -> str | None:
        """
        お題の単語についてネイティブ話者風のスピーチ原稿を生成

        Args:
            word: お題の単語
            seconds: 想定するスピーチの長さ（秒）

        Returns:
            原稿テキスト、失敗時はNone
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SCRIPT_SYSTEM_PROMPT},
                    {"role": "user", "content": SCRIPT_PROMPT.format(word=word, seconds=seconds)},
                ],
                max_tokens=400,
                temperature=0.7,
            )
            content: str | None = response.choices[0].message.content
            return content.strip() if content else None
        except Exception as e:
            logger.error("原稿生成エラー: %s", e)
            return None

    async def synthesize_speech(self, text: str, voice: str = "alloy", speed: float = 1.0) -> bytes:
        """
        テキストから音声（mp3）を生成

        Args:
            text: 音声化するテキスト
            voice: 音声の種類
            speed: 再生速度

        Returns:
            mp3のバイト列

        Raises:
            NarrationError: 音声生成に失敗した場合
        """
        try:
            response = await self.client.audio.speech.create(
                model=self.tts_model,
                voice=voice,
                input=text,
                speed=speed,
                response_format="mp3",
            )
            return response.content
        except Exception as e:
            logger.error("音声生成エラー: %s", e)
            raise NarrationError(str(e)) from e
