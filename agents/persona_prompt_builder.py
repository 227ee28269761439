"""Persona prompt builder for the mother-style assistant."""

import logging
from typing import Dict, List, Optional, Tuple

from llm.model_session import ModelSession, ModelSessionFactory
from memory.models import Message, Session
from schemas.analysis import RePrimingReport
from schemas.context import Persona, Role

logger = logging.getLogger(__name__)


def _require_every_persona(table: Dict[Persona, object], name: str) -> Dict[Persona, object]:
    """Fail at import time if a persona table misses a persona."""
    missing = [persona.value for persona in Persona if persona not in table]
    if missing:
        raise RuntimeError(f"{name} has no entry for personas: {', '.join(missing)}")
    return table


SYSTEM_PROMPTS = _require_every_persona({
    Persona.CARING: """# 思いやりのある母親AIアシスタント

## 基本設定
- 一人称は「私」「お母さん」を使用
- 相手は「あなた」「〇〇ちゃん/君」と呼ぶ
- 文末は「〜ね」「〜よ」を多用
- 心配事への共感を示す

## 具体的な返答パターン
- 体調の心配: 「熱はない？」「十分に休めてる？」
- 失敗への対応: 「次はうまくいくよ」「一緒に考えてみましょう」
- 成功の称賛: 「素晴らしいわ！」「お母さん、嬉しいわ」
- アドバイス: 「こうしてみたら？」「〜するといいかもね」

## 特別な配慮
- ネガティブな話題は必ず励ましで締める
- 健康に関する助言は具体的に提供
- 感情表現の絵文字は多くて3回まで。母親から送られて不自然な絵文字は避ける
- 重要な注意点は必ず「**〜**」で強調""",

    Persona.STRICT: """# 厳格な母親AIアシスタント

## 基本設定
- 一人称は「母ちゃん」を使用
- 文末は「〜なさい」「〜べきです」を多用
- 理由の説明を必ず付加

## 具体的な返答パターン
- 間違いの指摘: 「それは違います。〜が正しい」
- 行動の促し: 「すぐに取り掛かりなさい」
- 改善点の提示: 「〜を改善すべきです」
- 評価: 「よくできました」「まだ努力が必要です」

## 特別な配慮
- 批判は必ず建設的な提案を伴う
- 時間管理に関する指導を重視
- 感情表現は控えめに
- 重要な指示は「**〜**」で強調""",

    Persona.FUN: """# 楽しい母親AIアシスタント

## 基本設定
- 一人称は「私」「ママ」を使用
- 相手は「〇〇ちゃん」と呼ぶ
- 文末は「〜だよ！」「〜しよう！」を多用
- ポジティブな表現を優先

## 具体的な返答パターン
- 提案: 「〜してみない？」「一緒に〜しよう！」
- 励まし: 「がんばれ〜！」「できるよ！」
- 称賛: 「すごーい！」「さすが！」
- 冗談: 「あるある〜」「まさにそれ！」

## 特別な配慮
- 遊び心のある例え話を使用
- 創造的な解決策を提案
- 絵文字や顔文字を積極的に使用
- 楽しいアイデアは「**〜**」で強調""",
}, "SYSTEM_PROMPTS")

TONE_DIRECTIVES = _require_every_persona({
    Persona.CARING: "優しい言葉で返してください。",
    Persona.STRICT: "きっぱりとした言葉で返してください。",
    Persona.FUN: "明るい言葉で楽しく返してください。",
}, "TONE_DIRECTIVES")

# {name} is replaced with "<name>、" or removed when no name is known
TRANSITION_MESSAGES = _require_every_persona({
    Persona.CARING: "{name}こんにちは。優しいかあちゃんになったわよ。どんなことでも話してね。",
    Persona.STRICT: "{name}こんにちは。厳しいかあちゃんになったからね。しっかり相談にのるわよ。",
    Persona.FUN: "{name}こんにちは！楽しいかあちゃんになったわよ～♪ 一緒に楽しく話しましょう！",
}, "TRANSITION_MESSAGES")

WELCOME_MESSAGES = _require_every_persona({
    Persona.CARING: "{name}はじめまして。かあちゃんよ。何かあったらなんでも相談してね。",
    Persona.STRICT: "{name}はじめまして。これからお母さんとして色々教えてあげるわね。",
    Persona.FUN: "{name}はじめまして！楽しいかあちゃんよ～♪ なんでも気軽に話してね！",
}, "WELCOME_MESSAGES")

QUICK_PHRASES = _require_every_persona({
    Persona.CARING: [
        "洗濯の黄ばみを取る方法は？",
        "部屋のカレー臭を消すには？",
        "お風呂のカビの予防方法は？",
    ],
    Persona.STRICT: [
        "夕食を時短で作るコツは？",
        "効率的な掃除の順番は？",
        "子供のお弁当を早く作るには？",
    ],
    Persona.FUN: [
        "玉ねぎとじゃがいもで何作れる？",
        "トマトとチーズの簡単レシピは？",
        "掃除を楽しくするコツは？",
    ],
}, "QUICK_PHRASES")

SPEAKER_LABELS = {
    Role.USER: "ユーザー",
    Role.ASSISTANT: "AI",
}


class PersonaPromptBuilder:
    """Builds persona-specific prompts and handles persona switches."""

    CONTEXT_INSTRUCTION = "これまでの会話履歴を踏まえて、以下のやり取りに応答してください："

    def get_system_prompt(self, persona: Persona) -> str:
        """Get the fixed system prompt for a persona."""
        return SYSTEM_PROMPTS[Persona(persona)]

    def get_tone_directive(self, persona: Persona) -> str:
        """Get the closing tone directive for a persona."""
        return TONE_DIRECTIVES[Persona(persona)]

    def get_quick_phrases(self, persona: Persona) -> List[str]:
        """Get example questions suited to a persona."""
        return list(QUICK_PHRASES[Persona(persona)])

    def get_transition_message(self, persona: Persona, user_name: Optional[str] = None) -> str:
        """Greeting sent when the conversation switches to a persona."""
        return TRANSITION_MESSAGES[Persona(persona)].format(name=self._name_prefix(user_name))

    def get_welcome_message(self, persona: Persona, user_name: Optional[str] = None) -> str:
        """Greeting sent when a conversation starts with a persona."""
        return WELCOME_MESSAGES[Persona(persona)].format(name=self._name_prefix(user_name, "ちゃん、"))

    @staticmethod
    def _name_prefix(user_name: Optional[str], suffix: str = "、") -> str:
        if not user_name or not user_name.strip():
            return ""
        return f"{user_name.strip()}{suffix}"

    def format_transcript(self, messages: List[Message]) -> str:
        """Format messages as speaker-labelled lines."""
        return "\n\n".join(
            f"{SPEAKER_LABELS[msg.role]}: {msg.content}" for msg in messages
        )

    def build_contextual_prompt(
        self,
        persona: Persona,
        summary_digest: str,
        recent_messages: List[Message]
    ) -> str:
        """
        Build the full prompt sent to the model.

        Layout: system prompt, context digest, instruction, transcript of
        the recent window, tone directive. Identical inputs always give an
        identical prompt.

        Args:
            persona: Active persona
            summary_digest: Output of ConversationContextManager.summarize_for_prompt()
            recent_messages: Recent window, oldest first

        Returns:
            Prompt text
        """
        sections = [
            self.get_system_prompt(persona),
            summary_digest,
            self.CONTEXT_INSTRUCTION,
            self.format_transcript(recent_messages),
            self.get_tone_directive(persona),
        ]
        return "\n\n".join(section for section in sections if section)

    def switch_persona(
        self,
        session: Session,
        new_persona: Persona,
        model_session_factory: Optional[ModelSessionFactory],
        now: int,
        max_messages: int = 100
    ) -> Tuple[Optional[ModelSession], RePrimingReport]:
        """
        Switch a session to a new persona without losing history.

        Appends the persona's transition message (the welcome message when
        the history is empty), then re-primes a new model session.

        Args:
            session: Session to update in place
            new_persona: Persona to switch to
            model_session_factory: Builds a model session from a system
                prompt; None skips re-priming
            now: Current time in milliseconds
            max_messages: Message cap of the session

        Returns:
            Tuple of (new model session or None, re-priming report)
        """
        new_persona = Persona(new_persona)
        previous = session.persona

        if session.messages:
            greeting = self.get_transition_message(new_persona, session.user_name)
        else:
            greeting = self.get_welcome_message(new_persona, session.user_name)

        session.persona = new_persona
        session.append_message(Role.ASSISTANT, greeting, now=now, max_messages=max_messages)
        logger.info(
            f"Session {session.session_id}: persona {previous.value} -> {new_persona.value}"
        )

        if model_session_factory is None:
            return None, RePrimingReport()

        model_session = model_session_factory(self.get_system_prompt(new_persona))
        report = self.reprime(model_session, session.messages)
        return model_session, report

    def reprime(self, model_session: ModelSession, turns: List[Message]) -> RePrimingReport:
        """
        Replay turns into a model session one by one, in order.

        A failing turn is logged and skipped; the context digest sent with
        every prompt covers for it.

        Args:
            model_session: Freshly created model session
            turns: Turns to replay, oldest first

        Returns:
            RePrimingReport with counts of replayed and failed turns
        """
        report = RePrimingReport()
        for index, turn in enumerate(turns):
            try:
                model_session.replay(turn.role.value, turn.content)
                report.replayed += 1
            except Exception as e:
                logger.warning(f"Skipping turn {index} during re-priming: {type(e).__name__}: {e}")
                report.failed.append(index)
        return report
