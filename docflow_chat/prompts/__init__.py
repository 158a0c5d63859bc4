"""系统提示词与界面占位文案。

系统提示词按语言(locale) 从 prompts/<locale> 目录读取；
占位文案（请求失败、已终止等）集中在 PLACEHOLDERS 中，
保证流式气泡在失败或停止时不会一直为空。
"""

from pathlib import Path
from typing import Dict


PROMPTS_DIR = Path(__file__).resolve().parent

PLACEHOLDERS: Dict[str, Dict[str, str]] = {
    "zh": {
        "request_failed": "请求失败，请重试",
        "terminated": "已终止",
        "generic_error": "发生错误",
        "brainstorm_failed": "生成失败，请重试",
        "autocomplete_failed": "续写失败，请重试",
        "polish_failed": "AI 润色失败，请重试",
        "topic_required": "请输入头脑风暴主题",
        "count_out_of_range": "方案数量需在 {low} 到 {high} 之间",
        "new_tab_title": "新对话",
        "load_failed": "加载会话失败",
    },
    "en": {
        "request_failed": "Request failed, please retry",
        "terminated": "Stopped",
        "generic_error": "Something went wrong",
        "brainstorm_failed": "Generation failed, please retry",
        "autocomplete_failed": "Autocomplete failed, please retry",
        "polish_failed": "Polish failed, please retry",
        "topic_required": "Please enter a brainstorm topic",
        "count_out_of_range": "Count must be between {low} and {high}",
        "new_tab_title": "New chat",
        "load_failed": "Failed to load conversation",
    },
}


def placeholder(key: str, locale: str = "zh", **fmt) -> str:
    """取本地化文案；未知语言回落到中文。"""

    table = PLACEHOLDERS.get(locale) or PLACEHOLDERS["zh"]
    text = table[key]
    return text.format(**fmt) if fmt else text


def load_system_prompt(name: str = "doc_assistant", locale: str = "zh") -> str:
    """根据提示词名称和语言加载系统提示词文本。"""

    fname = PROMPTS_DIR / locale / f"{name}_system.md"
    if not fname.exists():
        fname = PROMPTS_DIR / "zh" / f"{name}_system.md"
    return fname.read_text(encoding="utf-8").strip()
