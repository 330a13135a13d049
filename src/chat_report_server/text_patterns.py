"""
Pattern tables for text classification.

Laughter detection, emoji personality and punctuation statistics are driven
by the tables in this module so the heuristics can be tuned without touching
the analyzers.
"""

import re
from typing import Dict, FrozenSet, Tuple

# Laughter: word-like tokens matched as a run
LAUGHTER_TOKEN_PATTERN = re.compile(
    r"(哈|嘿|嘻|笑死|xswl|红红火火|恍恍惚惚|lol|lmao|rofl)+", re.IGNORECASE
)
# Transliterated laughter ("hhhh"); two or more so "hi"/"hello" never match
LAUGHTER_H_PATTERN = re.compile(r"h{2,}", re.IGNORECASE)

LAUGHTER_PATTERNS: Tuple[re.Pattern, ...] = (LAUGHTER_TOKEN_PATTERN, LAUGHTER_H_PATTERN)

# Bracketed sticker tokens such as "[Smile]" or Unicode emoji, with an
# optional variation selector so "❤️" is one token
EMOJI_PATTERN = re.compile(
    r"(\[[^\[\]]+\])"
    r"|(?:[\U0001F600-\U0001F64F]|[\U0001F300-\U0001F5FF]|[\U0001F680-\U0001F6FF]"
    r"|[\U0001F700-\U0001F77F]|[\U0001F780-\U0001F7FF]|[\U0001F800-\U0001F8FF]"
    r"|[\U0001F900-\U0001F9FF]|[\U0001FA00-\U0001FA6F]|[\u2600-\u26FF]|[\u2700-\u27BF])\uFE0F?"
)

PERSONALITY_CATEGORIES: Dict[str, FrozenSet[str]] = {
    "Joy Planet Native": frozenset(
        {"[破涕为笑]", "[憨笑]", "[呲牙]", "[坏笑]", "[笑脸]", "[奸笑]", "[捂脸]", "[阴险]", "[吃瓜]",
         "😂", "😆", "🍉"}
    ),
    "Master of Irony": frozenset(
        {"[抠鼻]", "[微笑]", "[难过]", "[偷笑]", "[傲慢]", "[再见]", "[鄙视]", "[无语]", "[翻白眼]",
         "🙂", "🌚", "🙄", "👋"}
    ),
    "Networking Pro": frozenset(
        {"[玫瑰]", "[抱拳]", "[握手]", "[OK]", "[强]", "[礼物]", "[红包]", "[發]", "[庆祝]", "[烟花]",
         "[蛋糕]", "🌹", "🤝", "👍", "👌", "🎁"}
    ),
    "Socially Awkward": frozenset(
        {"[撇嘴]", "[害羞]", "[囧]", "[惊恐]", "[皱眉]", "[汗]", "[Emm]", "[尴尬]", "😅", "😓", "😳"}
    ),
    "Sleepyhead": frozenset(
        {"[睡]", "[困]", "[晕]", "[天啊]", "[发抖]", "[疑问]", "[发呆]", "[脸红]", "😴", "😵", "🥱"}
    ),
    "Little Bitter Melon": frozenset(
        {"[抓狂]", "[流泪]", "[大哭]", "[苦涩]", "[裂开]", "[叹气]", "[心碎]", "[凋谢]", "[衰]", "[失望]",
         "[快哭了]", "[委屈]", "😭", "💔", "🥀"}
    ),
    "Walking Powder Keg": frozenset(
        {"[发怒]", "[敲打]", "[骷髅]", "[炸弹]", "[便便]", "[咒骂]", "[打脸]", "[拳头]", "[弱]", "[菜刀]",
         "😡", "💣", "💩", "👊"}
    ),
    "Meme Factory": frozenset(
        {"[旺柴]", "[得意]", "[悠闲]", "[社会社会]", "[让我看看]", "[耶]", "[白眼]"}
    ),
    "Earthbound Angel": frozenset(
        {"[哇]", "[拥抱]", "[爱心]", "[加油]", "[鼓掌]", "[机智]", "[愉快]", "[色]", "[亲亲]",
         "\u2764\uFE0F", "\u2764", "🥰", "😘", "👏"}
    ),
}

NO_EMOJI_TAG = "Poker Face"
UNCATEGORIZED_TAG = "Offbeat Emoji Collector"
TIED_TAG = "Mystery Guest"

PUNCTUATION_MARKS: Tuple[str, ...] = ("。", "！", "？", "，", "、", "；", "：", "…", "~")

# Average length breakpoints for the terse / moderate / verbose label
TERSE_BELOW = 10
MODERATE_BELOW = 30

MESSAGE_TYPE_NAMES: Dict[int, str] = {
    1: "Text",
    3: "Image",
    34: "Voice",
    42: "Contact card",
    43: "Video",
    47: "Sticker",
    48: "Location",
    10000: "System",
    8594229559345: "Red packet",
    8589934592049: "Transfer",
    17179869233: "Link",
    21474836529: "Article",
    154618822705: "Mini program",
    12884901937: "Music",
    81604378673: "Chat history",
    266287972401: "Pat",
    270582939697: "Channels",
    25769803825: "File",
}
OTHER_TYPE_NAME = "Other"

NON_TEXT_PLACEHOLDER = "[non-text message]"
MAX_DISPLAY_LENGTH = 2000
TRUNCATION_MARKER = "... (truncated)"
