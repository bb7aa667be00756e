"""
アプリケーション固有の例外
"""


class JamTalkError(Exception):
    """JAM Talkの基底例外"""


class InvalidSessionTransitionError(JamTalkError):
    """練習セッションの状態遷移が許可されていない"""


class ResetNotAllowedError(JamTalkError):
    """本番環境で利用回数のリセットが要求された"""


class NarrationError(JamTalkError):
    """読み上げ音声の生成または再生に失敗した"""


class CheckoutError(JamTalkError):
    """決済ページへの遷移に失敗した"""
