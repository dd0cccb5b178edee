"""提示词模板加载工具。

按语言(locale) 从 prompts/<locale> 目录读取模板文本，占位符用 str.format 填充：

- chat_system: 对话的 system instruction（document_context / logic_context / separator）。
- distill: 规则提炼请求（document_context / transcript）。
"""

from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


def load_prompt(name: str, locale: str = "en") -> str:
    fname = PROMPTS_DIR / locale / f"{name}.md"
    return fname.read_text(encoding="utf-8")
