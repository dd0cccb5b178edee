"""规则文件（logic file）的导入导出。

文件格式::

    {"version": "2.0.0", "logic": ["rule 1", "rule 2"]}

导入时只接受 ``logic`` 为字符串数组的 JSON 对象，其他任何形状都抛出
RuleFormatError，且不会修改当前状态。
"""

import json
from datetime import date
from typing import Any, Optional

from listening_core.config.settings import APP_VERSION
from listening_core.domain.exceptions import RuleFormatError
from listening_core.domain.models import RuleSet


INVALID_RULE_FILE_MESSAGE = "The uploaded file is not a valid logic file."


def parse_rule_file(content: str, default_version: str = APP_VERSION) -> RuleSet:
    try:
        data: Any = json.loads(content)
    except (json.JSONDecodeError, TypeError) as e:
        raise RuleFormatError(code="INVALID_RULE_FILE", message=INVALID_RULE_FILE_MESSAGE, reason=str(e))

    logic = data.get("logic") if isinstance(data, dict) else None
    if not isinstance(logic, list) or not all(isinstance(r, str) for r in logic):
        raise RuleFormatError(
            code="INVALID_RULE_FILE",
            message=INVALID_RULE_FILE_MESSAGE,
            reason='Expected \'{ "logic": [...] }\' with string entries',
        )
    version = data.get("version")
    return RuleSet(version=version if isinstance(version, str) else default_version, rules=list(logic))


def dump_rule_file(rules: RuleSet) -> str:
    return json.dumps({"version": rules.version, "logic": list(rules.rules)}, ensure_ascii=False, indent=2)


def rule_file_name(today: Optional[date] = None) -> str:
    day = today or date.today()
    return f"social-listening-logic-{day.isoformat()}.json"


def upload_rules(current: RuleSet, content: str) -> RuleSet:
    """校验通过后用上传内容整体替换 current 的版本与规则，返回 current。"""
    parsed = parse_rule_file(content, default_version=current.version)
    current.version = parsed.version
    current.rules[:] = parsed.rules
    return current
