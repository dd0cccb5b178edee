"""统一的会话与请求数据模型。

本模块定义了核心层在 Store、Engine 与 Provider 之间共享的标准数据结构：

- TextPart / BinaryPart: 消息片段（标签联合，二者必居其一）。
- Message: 会话中的一条消息（user/model），流式过程中以不可变快照的形式整体替换。
- Citation / Document: 引用与参考文档。
- RuleSet: 从对话中提炼出的规则序列（顺序即拼接进上下文的顺序）。
- ChatMessage / ChatRequest / ChatStreamChunk: 发给底层 Provider 的请求结构。

所有 Provider 适配器都只依赖这些模型，并负责在各自的 API JSON
与这些模型之间做转换。
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union


# 会话角色（与 Gemini 风格的 user/model 对应）
Role = Literal["user", "model"]


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class BinaryPart:
    """内联二进制内容（通常是图片），data 为 base64 字符串。"""

    mime_type: str
    data: str


Part = Union[TextPart, BinaryPart]


@dataclass(frozen=True)
class Citation:
    file_name: str
    quote: str


@dataclass(frozen=True)
class Document:
    """一份已解析的参考文档，file_name 在同一会话内唯一。"""

    file_name: str
    content: str


class MessageState(str, Enum):
    STREAMING = "streaming"
    SETTLED = "settled"


@dataclass(frozen=True)
class Message:
    """一条会话消息。

    - parts: 有序的消息片段。
    - citations: 仅在 model 消息进入 SETTLED 状态后才会附加。
    - generation_time_ms: 从发送开始到解码完成的耗时（毫秒）。
    - state: 流式中的消息为 STREAMING，最终消息为 SETTLED。
    """

    id: str
    role: Role
    parts: Tuple[Part, ...] = ()
    citations: Optional[Tuple[Citation, ...]] = None
    generation_time_ms: Optional[float] = None
    state: MessageState = MessageState.SETTLED

    @property
    def text(self) -> str:
        """拼接所有文本片段，二进制片段被忽略。"""
        return " ".join(p.text for p in self.parts if isinstance(p, TextPart)).strip()

    def with_appended_text(self, fragment: str) -> "Message":
        """返回追加 fragment 到首个文本片段后的新快照（无文本片段时新建一个）。"""
        parts = list(self.parts)
        for idx, part in enumerate(parts):
            if isinstance(part, TextPart):
                parts[idx] = TextPart(part.text + fragment)
                break
        else:
            parts.insert(0, TextPart(fragment))
        return replace(self, parts=tuple(parts))


@dataclass
class RuleSet:
    """规则序列。提炼路径只会在末尾追加；调用方可直接编辑。"""

    version: str
    rules: List[str] = field(default_factory=list)

    def append(self, rule: str) -> None:
        self.rules.append(rule)

    def insert(self, index: int, rule: str) -> None:
        self.rules.insert(index, rule)

    def replace(self, index: int, rule: str) -> None:
        self.rules[index] = rule

    def delete(self, index: int) -> None:
        del self.rules[index]

    def clear(self) -> None:
        self.rules.clear()

    def __len__(self) -> int:
        return len(self.rules)


# ---- Provider 请求模型 ----


@dataclass
class ChatMessage:
    """发给 Provider 的一条消息，parts 保持与存储消息一一对应。"""

    role: Literal["system", "user", "model"]
    parts: List[Part]


@dataclass
class ChatRequest:
    """一次完整的生成请求。

    Provider 适配层负责把本结构转换成各家 API 的 JSON 请求体。
    """

    provider: str  # 逻辑 Provider 名，如 "glm"
    model: str  # 逻辑模型名，如 "chat"（再由 registry 映射为真实模型名）
    messages: List[ChatMessage]
    system_instruction: Optional[str] = None
    temperature: Optional[float] = None  # None 时取 registry 中模型的默认值
    top_p: float = 0.95
    max_tokens: Optional[int] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatStreamChunk:
    """流式返回的单个增量。"""

    provider: str
    model: str
    delta_text: str
    finish_reason: Optional[str] = None
    usage: Optional[ChatUsage] = None


# ---- 快照序列化（字段名沿用前端 localStorage 的 camelCase 形状） ----


def part_to_dict(part: Part) -> Dict[str, Any]:
    if isinstance(part, BinaryPart):
        return {"inlineData": {"mimeType": part.mime_type, "data": part.data}}
    return {"text": part.text}


def part_from_dict(data: Dict[str, Any]) -> Part:
    """解析片段；text 与 inlineData 都缺失时归一化为空文本，保持位置对齐。"""
    inline = data.get("inlineData")
    if isinstance(inline, dict):
        return BinaryPart(mime_type=str(inline.get("mimeType") or ""), data=str(inline.get("data") or ""))
    return TextPart(str(data.get("text") or ""))


def message_to_dict(message: Message) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": message.id,
        "role": message.role,
        "parts": [part_to_dict(p) for p in message.parts],
    }
    if message.citations is not None:
        payload["citations"] = [{"fileName": c.file_name, "quote": c.quote} for c in message.citations]
    if message.generation_time_ms is not None:
        payload["generationTime"] = message.generation_time_ms
    return payload


def message_from_dict(data: Dict[str, Any]) -> Message:
    citations = None
    if isinstance(data.get("citations"), list):
        citations = tuple(
            Citation(file_name=c["fileName"], quote=c["quote"])
            for c in data["citations"]
            if isinstance(c, dict) and isinstance(c.get("fileName"), str) and isinstance(c.get("quote"), str)
        )
    return Message(
        id=data["id"],
        role=data["role"],
        parts=tuple(part_from_dict(p) if isinstance(p, dict) else TextPart("") for p in data.get("parts") or []),
        citations=citations,
        generation_time_ms=data.get("generationTime"),
        state=MessageState.SETTLED,
    )
