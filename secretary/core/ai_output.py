"""
Group Secretary Bot — AI Query Classification & Output Cleanup.

Before drafting, an AI query is checked for two special intents: a question
about the current time (answered from the clock) and a reminder request
(routed to tool calling). Free-form drafts optionally get web-search context
when the query looks like it needs fresh information.

Model output is cleaned of Markdown emphasis and stock courtesy phrases.
"""

from __future__ import annotations

import re

# Appended to the tenant's system prompt for free-form drafts
OUTPUT_RULES = """

【出力の絶対ルール（必ず守ること）】
- Markdownの強調記号（**、__、*、_）は絶対に使用禁止
- 「承知いたしました」「かしこまりました」などの冒頭挨拶は禁止
- 「何か関連して確認したいことはありますか？」「何かご不明な点があれば」などの結びのフレーズは禁止
- 結果のみを簡潔に返答すること"""

# ---------------------------------------------------------------------------
# Output sanitizer
# ---------------------------------------------------------------------------

_EMPHASIS = [
    re.compile(r"\*\*([^*]+)\*\*"),
    re.compile(r"__([^_]+)__"),
    re.compile(r"(?<!\*)\*(?!\*)([^*]+)(?<!\*)\*(?!\*)"),
    re.compile(r"(?<!_)_(?!_)([^_]+)(?<!_)_(?!_)"),
]

_OPENING_PHRASES = [
    re.compile(r"^承知いたしました[。、\s]*"),
    re.compile(r"^かしこまりました[。、\s]*"),
    re.compile(r"^はい[。、\s]*"),
    re.compile(r"^ありがとうございます[。、\s]*"),
]

_CLOSING_PHRASES = [
    re.compile(r"[。\s]*何か関連して確認したいことはありますか[？?]?\s*$"),
    re.compile(r"[。\s]*何かご不明な点があれば[、。]?[^。]*[。]?\s*$"),
    re.compile(r"[。\s]*お気軽にお申し付けください[。]?\s*$"),
    re.compile(r"[。\s]*何かあればお知らせください[。]?\s*$"),
    re.compile(r"[。\s]*他にご質問があれば[、。]?[^。]*[。]?\s*$"),
]


def sanitize_ai_output(text: str) -> str:
    """Strip Markdown emphasis and stock opening/closing phrases."""
    result = text
    for pattern in _EMPHASIS:
        result = pattern.sub(r"\1", result)
    for pattern in _OPENING_PHRASES:
        result = pattern.sub("", result)
    for pattern in _CLOSING_PHRASES:
        result = pattern.sub("", result)
    return result.strip()


# ---------------------------------------------------------------------------
# Intent heuristics
# ---------------------------------------------------------------------------

_REALTIME_KEYWORDS = [
    # time
    "今", "現在", "最新", "今日", "昨日", "今週", "今月", "今年", "最近", "新しい", "リアルタイム",
    # news
    "ニュース", "速報", "報道", "発表", "アナウンス",
    # years
    "2024年", "2025年", "2026年", "2027年",
    # questions about current state
    "誰が", "何が", "どこが", "いくら",
    # roles that change
    "総理大臣", "大統領", "首相", "社長", "ceo",
    # events
    "イベント", "開催", "予定", "スケジュール",
    # markets
    "株価", "為替", "レート", "価格", "相場",
    # weather
    "天気", "気温", "予報",
]

_REALTIME_PATTERNS = [
    re.compile(r"今の.+は[?？]"),
    re.compile(r"現在の.+は[?？]"),
    re.compile(r"最新の.+"),
    re.compile(r"いつ.+ですか[?？]"),
]

_TIME_QUERY_KEYWORDS = [
    "今何時", "今、何時", "何時？", "何時ですか",
    "今日は何日", "今日何日", "何日？", "何日ですか",
    "現在時刻", "今の時間", "時間教えて",
]

_REMINDER_KEYWORDS = [
    "リマインダー", "リマインド", "通知", "知らせて", "思い出させて",
    "分前に", "前に教え", "前にリマインド", "前に通知",
    "分後に", "分後リマインド", "分後リマインダー",
    "時間後に", "後に教えて", "後にリマインド", "後にリマインダー",
    "後に通知", "教えて", "お知らせ",
]


def requires_web_search(query: str) -> bool:
    """True when the query likely needs current information."""
    lowered = query.lower()
    if any(keyword in lowered for keyword in _REALTIME_KEYWORDS):
        return True
    return any(pattern.search(query) for pattern in _REALTIME_PATTERNS)


def is_time_query(text: str) -> bool:
    return any(keyword in text for keyword in _TIME_QUERY_KEYWORDS)


def is_reminder_request(text: str) -> bool:
    return any(keyword in text for keyword in _REMINDER_KEYWORDS)
